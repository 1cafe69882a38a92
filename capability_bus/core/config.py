from __future__ import annotations

import os

from dotenv import load_dotenv

from capability_bus.models.config import BusConfig


def _parse_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


def _parse_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def load_config(*, dotenv: bool = True) -> BusConfig:
    """Loads the bus configuration from environment variables with defaults."""
    if dotenv:
        load_dotenv()

    defaults = BusConfig()
    return BusConfig(
        max_shown_notifications=_parse_int(
            os.getenv("CAPBUS_MAX_SHOWN_NOTIFICATIONS"), defaults.max_shown_notifications
        ),
        notification_duration_seconds=_parse_float(
            os.getenv("CAPBUS_NOTIFICATION_DURATION_SECONDS"),
            defaults.notification_duration_seconds,
        ),
        positive_action_threshold=_parse_int(
            os.getenv("CAPBUS_POSITIVE_ACTION_THRESHOLD"), defaults.positive_action_threshold
        ),
        settings_cta_text=os.getenv("CAPBUS_SETTINGS_CTA_TEXT", defaults.settings_cta_text),
        preferences_path=os.getenv("CAPBUS_PREFERENCES_PATH", defaults.preferences_path),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        log_format=os.getenv("LOG_FORMAT", defaults.log_format).lower(),
    )
