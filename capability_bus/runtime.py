"""
Bus Runtime — wires the bus, its two subscribers and the lifecycle gate.

One runtime per process. Producers receive ``runtime.bus`` (or use the
convenience wrappers below); renderers read ``runtime.arbiter.active`` and
``runtime.notifications.items`` and call back through the accept/dismiss/
tap/swipe hooks; the host reports scene changes through
``runtime.lifecycle.transition``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from capability_bus.arbiter.arbiter import CapabilityArbiter
from capability_bus.bus import producers
from capability_bus.bus.channel import RequestBus
from capability_bus.catalog.rating import RatingGate
from capability_bus.catalog.registry import (
    CapabilityCatalog,
    PermissionProvider,
    SettingsOpener,
)
from capability_bus.lifecycle.gate import SceneLifecycleGate
from capability_bus.lifecycle.requirement import CapabilityRequirement
from capability_bus.models.config import BusConfig
from capability_bus.models.lifecycle import LifecyclePhase
from capability_bus.models.notification import (
    NotificationContent,
    NotificationSize,
    NotificationStyle,
    NotificationType,
)
from capability_bus.models.request import RequestKind
from capability_bus.notifications.queue import HapticEngine, NotificationQueue
from capability_bus.preferences.store import PreferenceStore

_logger = logging.getLogger(__name__)


class BusRuntime:
    def __init__(
        self,
        config: Optional[BusConfig] = None,
        provider: Optional[PermissionProvider] = None,
        haptics: Optional[HapticEngine] = None,
        settings_opener: Optional[SettingsOpener] = None,
        store: Optional[PreferenceStore] = None,
        system_review_prompt: Optional[Callable[[], Awaitable[None]]] = None,
        initial_phase: LifecyclePhase = LifecyclePhase.ACTIVE,
        app_version: Optional[str] = None,
    ):
        self.config = config or BusConfig()
        self.app_version = app_version
        self.bus = RequestBus()
        self.store = store or PreferenceStore(self.config.preferences_path)
        self.rating = RatingGate(
            self.bus, self.store, self.config, system_prompt=system_review_prompt
        )
        self.catalog = CapabilityCatalog(
            provider=provider,
            settings_opener=settings_opener,
            review_prompter=self.rating.prompt_for_review,
        )
        self.lifecycle = SceneLifecycleGate(initial_phase)
        self.arbiter = CapabilityArbiter(
            self.bus, self.catalog, self.config, phase_provider=self.lifecycle.current_phase
        )
        self.notifications = NotificationQueue(
            self.bus,
            self.config,
            haptics=haptics,
            phase_provider=self.lifecycle.current_phase,
        )
        self.lifecycle.register(self.arbiter)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start both subscribers on the running loop."""
        if self._started:
            return
        self.bus.bind_loop(asyncio.get_running_loop())
        if self.app_version is not None:
            previous = self.store.record_app_version(self.app_version)
            if previous is not None and previous != self.app_version:
                _logger.info("App updated from %s to %s", previous, self.app_version)
        self.arbiter.start()
        self.notifications.start()
        self._started = True
        _logger.info("Capability bus started (phase=%s)", self.lifecycle.phase.value)

    async def stop(self) -> None:
        if not self._started:
            return
        await self.arbiter.stop()
        await self.notifications.stop()
        self.bus.close()
        self._started = False
        _logger.info("Capability bus stopped")

    async def __aenter__(self) -> "BusRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def settle(self) -> None:
        """Wait until both subscribers processed everything emitted so far."""
        await self.bus.drain()

    # --- Producer conveniences ---

    def request_capability(
        self,
        kind: RequestKind,
        on_granted: Optional[Callable[[], None]] = None,
        on_dismiss: Optional[Callable[[], None]] = None,
    ) -> str:
        return producers.request_capability(self.bus, kind, on_granted, on_dismiss)

    def show_notification(
        self,
        notification_type: NotificationType,
        content: NotificationContent,
        size: Optional[NotificationSize] = None,
        on_tap: Optional[Callable[[], None]] = None,
    ) -> str:
        return producers.show_notification(self.bus, notification_type, content, size, on_tap)

    def show_custom_notification(
        self,
        content: NotificationContent,
        style: NotificationStyle,
        on_tap: Optional[Callable[[], None]] = None,
    ) -> str:
        return producers.show_custom_notification(self.bus, content, style, on_tap)

    def require(
        self,
        kind: RequestKind,
        on_success: Optional[Callable[[], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> CapabilityRequirement:
        """Create a requirement that re-checks on every return to the foreground."""
        requirement = CapabilityRequirement(
            kind, self.catalog, on_success=on_success, on_cancel=on_cancel, config=self.config
        )
        self.lifecycle.register(requirement)
        return requirement

    def release(self, requirement: CapabilityRequirement) -> None:
        """Stop re-checking a requirement whose guarded content went away."""
        self.lifecycle.unregister(requirement)
