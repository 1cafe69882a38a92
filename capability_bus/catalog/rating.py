"""
Rating Gate — rate limiter for the app-rating request.

Producers call record_positive_action() whenever the user experiences
something good (e.g. completes a trip). Once the counter reaches the
configured threshold, a single app-rating request is emitted on the bus.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from capability_bus.bus.channel import RequestBus
from capability_bus.bus.producers import request_capability
from capability_bus.models.config import BusConfig
from capability_bus.models.request import RequestKind
from capability_bus.preferences.store import (
    ALREADY_ASKED_FOR_REVIEW,
    POSITIVE_ACTION_COUNT,
    PreferenceStore,
)

_logger = logging.getLogger(__name__)


async def _show_system_review_prompt() -> None:
    _logger.info("Showing system review prompt")


class RatingGate:
    def __init__(
        self,
        bus: RequestBus,
        store: PreferenceStore,
        config: Optional[BusConfig] = None,
        system_prompt: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.bus = bus
        self.store = store
        self.config = config or BusConfig()
        self._system_prompt = system_prompt or _show_system_review_prompt

    @property
    def positive_action_count(self) -> int:
        return self.store.get_int(POSITIVE_ACTION_COUNT)

    @property
    def already_asked(self) -> bool:
        return self.store.get_bool(ALREADY_ASKED_FOR_REVIEW)

    def should_prompt(self) -> bool:
        return (
            not self.already_asked
            and self.positive_action_count >= self.config.positive_action_threshold
        )

    def record_positive_action(
        self,
        on_rated: Optional[Callable[[], None]] = None,
        on_later: Optional[Callable[[], None]] = None,
    ) -> Optional[str]:
        """
        Count a positive action. Emits the rating request once the threshold is
        reached and returns its request id; otherwise returns None.
        """
        count = self.store.increment(POSITIVE_ACTION_COUNT)
        if not self.should_prompt():
            return None

        # Mark before the prompt resolves so repeated actions don't queue more prompts.
        self.mark_asked()
        _logger.info("Positive action threshold reached (%s); requesting app rating", count)
        return request_capability(
            self.bus, RequestKind.APP_RATING, on_granted=on_rated, on_dismiss=on_later
        )

    def mark_asked(self) -> None:
        self.store.set(ALREADY_ASKED_FOR_REVIEW, True)

    async def prompt_for_review(self) -> bool:
        """The app-rating action: show the system review prompt."""
        self.mark_asked()
        await self._system_prompt()
        return True

    def reset(self) -> None:
        self.store.remove(POSITIVE_ACTION_COUNT)
        self.store.remove(ALREADY_ASKED_FOR_REVIEW)
