"""
Notification Queue — bounded, newest-first, deduplicating list of in-app
notifications, each with its own auto-dismiss timer.

Behavioral Contract:
- len(items) never exceeds the configured maximum
- An item equal (content + style) to the current head is dropped, not stacked
- Removal by id is idempotent: an item is removed at most once, by whichever
  path fires first (swipe, tap policy, eviction or timer), and never reappears
- The haptic for an incoming item fires regardless of queue state
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from capability_bus.bus.channel import RequestBus, Subscription
from capability_bus.models.config import BusConfig
from capability_bus.models.lifecycle import LifecyclePhase
from capability_bus.models.messages import NotificationMessage
from capability_bus.models.notification import HapticKind, NotificationItem

_logger = logging.getLogger(__name__)


class UnknownNotification(LookupError):
    """Raised when tapping a notification that is no longer shown."""
    pass


class HapticEngine(Protocol):
    def notification(self, kind: HapticKind) -> None: ...


class LoggingHapticEngine:
    """Default haptic engine for hosts without a vibration motor."""

    def notification(self, kind: HapticKind) -> None:
        _logger.debug("Haptic feedback: %s", kind.value)


class NotificationQueue:
    """Consumes notification messages and owns the shown notifications."""

    def __init__(
        self,
        bus: RequestBus,
        config: Optional[BusConfig] = None,
        haptics: Optional[HapticEngine] = None,
        phase_provider: Optional[Callable[[], LifecyclePhase]] = None,
    ):
        self.bus = bus
        self.config = config or BusConfig()
        self.haptics = haptics or LoggingHapticEngine()
        self._phase_provider = phase_provider
        self._items: List[NotificationItem] = []
        self._timers: Dict[str, asyncio.Task] = {}
        self._listeners: List[Callable[[Tuple[NotificationItem, ...]], None]] = []
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def max_shown(self) -> int:
        return self.config.max_shown_notifications

    @property
    def items(self) -> Tuple[NotificationItem, ...]:
        """Shown notifications, newest first (rendering order)."""
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> Optional[NotificationItem]:
        return next((i for i in self._items if i.id == item_id), None)

    def add_listener(self, listener: Callable[[Tuple[NotificationItem, ...]], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[Tuple[NotificationItem, ...]], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- Subscription ---

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._subscription = self.bus.subscribe_to(
            NotificationMessage, name="notification_queue"
        )
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self._task is not None:
            await self._task
        self._subscription = None
        self._task = None
        self.clear()

    async def _run(self) -> None:
        async for message in self._subscription:
            try:
                self.insert(message.item)
            except Exception:
                _logger.exception("Failed to show notification %s", message.item.id)

    # --- Insertion ---

    def insert(self, item: NotificationItem) -> bool:
        """
        Show a notification. Returns False if it was dropped as a duplicate.

        Must run on the event loop (the auto-dismiss timer is an asyncio task).
        """
        loop = asyncio.get_running_loop()
        self._play_haptic(item)

        # Checked before eviction so a duplicate never evicts anything.
        if self._items and self._items[0].same_as(item):
            _logger.debug("Dropping duplicate notification %r", item.content.title)
            return False

        while len(self._items) >= self.max_shown:
            oldest = self._items[-1]
            _logger.debug("Evicting notification %s to make room", oldest.id)
            self._remove(oldest.id)

        self._timers[item.id] = loop.create_task(
            self._expire_after(item.id, self.config.notification_duration_seconds)
        )
        self._items.insert(0, item)
        self._notify()
        return True

    def _play_haptic(self, item: NotificationItem) -> None:
        if self._phase_provider is not None and self._phase_provider() == LifecyclePhase.BACKGROUND:
            return
        try:
            self.haptics.notification(item.style.haptic)
        except Exception:
            _logger.warning("Haptic feedback failed for %s", item.id, exc_info=True)

    async def _expire_after(self, item_id: str, seconds: float) -> None:
        await asyncio.sleep(seconds)
        # Drop our own handle first so _remove() does not cancel this task.
        self._timers.pop(item_id, None)
        if self._remove(item_id):
            _logger.debug("Notification %s expired", item_id)

    # --- Removal ---

    def remove(self, item_id: str) -> bool:
        """Remove a notification by id. Removing an absent id is a no-op."""
        return self._remove(item_id)

    def swipe(self, item_id: str) -> bool:
        """The user swiped the notification away."""
        return self._remove(item_id)

    def tap(self, item_id: str, dismiss: bool = False) -> None:
        """
        The user tapped the notification: run its on_tap callback, and remove
        it too when ``dismiss`` is set.
        """
        item = self.get(item_id)
        if item is None:
            raise UnknownNotification(f"Notification {item_id} is not shown")
        if item.on_tap is not None:
            try:
                item.on_tap()
            except Exception:
                _logger.exception("on_tap for notification %s raised", item_id)
        if dismiss:
            self._remove(item_id)

    def clear(self) -> None:
        for item in list(self._items):
            self._remove(item.id)

    def _remove(self, item_id: str) -> bool:
        timer = self._timers.pop(item_id, None)
        if timer is not None:
            timer.cancel()

        for index, item in enumerate(self._items):
            if item.id == item_id:
                del self._items[index]
                self._notify()
                return True
        return False

    def _notify(self) -> None:
        snapshot = self.items
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _logger.exception("Notification listener raised")
