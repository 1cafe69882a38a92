"""Bus configuration."""

from pydantic import BaseModel, Field


class BusConfig(BaseModel):
    """Configuration shared by the arbiter, notification queue and rating gate."""

    # How many notifications can be shown at once. The oldest is evicted when
    # the limit is reached; duplicates never stack.
    max_shown_notifications: int = Field(default=3, ge=1)
    notification_duration_seconds: float = Field(default=6.0, gt=0)

    # Positive actions the user must experience before the rating prompt.
    positive_action_threshold: int = Field(default=10, ge=1)

    settings_cta_text: str = "Allow in Settings"
    preferences_path: str = ":memory:"

    log_level: str = "INFO"
    log_format: str = "text"    # "text" | "json"
