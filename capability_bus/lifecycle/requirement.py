"""
Capability Requirement — guards a piece of content behind a capability.

Unlike a bus request (shown as a sheet by the arbiter), a requirement is shown
inline in place of the content it guards until access is obtained. It
re-checks the grant state whenever the scene returns to the foreground, so a
permission revoked in Settings hides the content again.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from capability_bus.catalog.registry import CapabilityCatalog
from capability_bus.models.config import BusConfig
from capability_bus.models.lifecycle import LifecyclePhase
from capability_bus.models.request import PermissionStatus, RequestKind

_logger = logging.getLogger(__name__)


class CapabilityRequirement:
    def __init__(
        self,
        kind: RequestKind,
        catalog: CapabilityCatalog,
        on_success: Optional[Callable[[], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        config: Optional[BusConfig] = None,
    ):
        self.kind = kind
        self.catalog = catalog
        self.config = config or BusConfig()
        self._on_success = on_success
        self._on_cancel = on_cancel
        self.got_access = False
        self.settings_redirect = False
        self._default_cta_text = catalog.get(kind).presentation.cta_text
        self.cta_text = self._default_cta_text

    async def check(self) -> bool:
        """Probe the grant state and update got_access. Returns got_access."""
        if self.kind == RequestKind.APP_RATING:
            return self.got_access

        status = await self.catalog.probe(self.kind)
        if status == PermissionStatus.GRANTED:
            self.settings_redirect = False
            self.cta_text = self._default_cta_text
            if not self.got_access:
                self.got_access = True
                self._run(self._on_success)
        elif status == PermissionStatus.DENIED:
            self.got_access = False
            self.settings_redirect = True
            self.cta_text = self.config.settings_cta_text
        return self.got_access

    async def reconcile(self, phase: LifecyclePhase) -> None:
        if phase.is_foreground:
            await self.check()

    async def accept(self) -> bool:
        """The user pressed the inline call-to-action."""
        if self.settings_redirect:
            self.catalog.open_settings()
            self._run(self._on_cancel)
            return False

        if await self.catalog.perform_action(self.kind):
            self.got_access = True
            self._run(self._on_success)
            return True

        self._run(self._on_cancel)
        return False

    def dismiss(self) -> None:
        self._run(self._on_cancel)

    def _run(self, callback: Optional[Callable[[], None]]) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception:
            _logger.exception("Callback for %s requirement raised", self.kind.value)
