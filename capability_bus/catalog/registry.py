"""
Permission/Action Catalog — static registry of request kinds.

Each RequestKind is registered with its presentation metadata, an async probe
that reports the current grant state without user-visible side effects, and
an async action that triggers the OS consent flow (or the review prompt).

Behavioral Contract:
- probe() never raises: failures degrade to UNDETERMINED so the UI surfaces (fail-closed)
- perform_action() never raises: failures count as a denial
- open_settings() always reports that access was not obtained
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from capability_bus.models.request import (
    PermissionStatus,
    RequestKind,
    RequestPresentation,
)

_logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[PermissionStatus]]
Action = Callable[[], Awaitable[bool]]
SettingsOpener = Callable[[], bool]
ReviewPrompter = Callable[[], Awaitable[bool]]


class ProbeFailure(Exception):
    """A probe could not determine the grant state."""
    pass


class ActionFailure(Exception):
    """An action failed before the OS could answer."""
    pass


class UnknownRequestKind(LookupError):
    """Raised for a request kind with no registered capability entry."""
    pass


class PermissionProvider(Protocol):
    """Protocol for the OS permission layer, a pluggable backend."""

    async def status(self, kind: RequestKind) -> PermissionStatus: ...

    async def request(self, kind: RequestKind) -> bool: ...


@dataclass(frozen=True)
class CapabilityEntry:
    kind: RequestKind
    presentation: RequestPresentation
    probe: Probe
    action: Action


DEFAULT_PRESENTATIONS: Dict[RequestKind, RequestPresentation] = {
    RequestKind.LOCATION_ACCESS: RequestPresentation(
        symbol="location.fill",
        title="Location Access",
        subtitle="We use your location to show nearby pickups and track your trip.",
        cta_text="Allow Location Access",
        footer_note="You can change this anytime in Settings.",
    ),
    RequestKind.CAMERA_ACCESS: RequestPresentation(
        symbol="camera.fill",
        title="Camera Access",
        subtitle="Scan tickets and booking codes with your camera.",
        cta_text="Allow Camera Access",
    ),
    RequestKind.PHOTOS_ACCESS: RequestPresentation(
        symbol="photo.on.rectangle",
        title="Photo Library Access",
        subtitle="Attach photos from your library to your trips.",
        cta_text="Allow Photos Access",
    ),
    RequestKind.CONTACTS_ACCESS: RequestPresentation(
        symbol="person.crop.circle",
        title="Contacts Access",
        subtitle="Share your trip with friends from your contacts.",
        cta_text="Allow Contacts Access",
    ),
    RequestKind.CALENDAR_ACCESS: RequestPresentation(
        symbol="calendar",
        title="Calendar Access",
        subtitle="Add upcoming trips to your calendar.",
        cta_text="Allow Calendar Access",
    ),
    RequestKind.REMINDERS_ACCESS: RequestPresentation(
        symbol="checklist",
        title="Reminders Access",
        subtitle="Get reminded before your trip departs.",
        cta_text="Allow Reminders Access",
    ),
    RequestKind.MICROPHONE_ACCESS: RequestPresentation(
        symbol="mic.fill",
        title="Microphone Access",
        subtitle="Talk to your driver hands-free.",
        cta_text="Allow Microphone Access",
    ),
    RequestKind.APP_RATING: RequestPresentation(
        symbol="star.bubble",
        title="Enjoying the App?",
        subtitle="A quick rating helps other travellers find us.",
        cta_text="Rate the App",
        footer_note="It only takes a second.",
        dismiss_text="Later",
    ),
}


def open_app_in_settings() -> bool:
    """
    Default settings opener. The host replaces it with a real deeplink.

    Always returns False: opening Settings never grants access by itself.
    """
    _logger.info("Opening app settings")
    return False


async def _request_review() -> bool:
    _logger.info("Requesting app review through system prompt")
    return True


class SimulatedPermissionProvider:
    """
    In-memory stand-in for the OS permission layer.

    Used for development and tests. ``user_choices`` decides what the simulated
    user answers to the consent dialog (default: allow).
    """

    def __init__(
        self,
        statuses: Optional[Dict[RequestKind, PermissionStatus]] = None,
        user_choices: Optional[Dict[RequestKind, bool]] = None,
    ):
        self._statuses: Dict[RequestKind, PermissionStatus] = dict(statuses or {})
        self._user_choices: Dict[RequestKind, bool] = dict(user_choices or {})
        self._failing_probes: set = set()
        self._failing_actions: set = set()
        self.status_calls: List[RequestKind] = []
        self.request_calls: List[RequestKind] = []

    def set_status(self, kind: RequestKind, status: PermissionStatus) -> None:
        """Simulate the user changing the permission (e.g. in the Settings app)."""
        self._statuses[kind] = status

    def set_user_choice(self, kind: RequestKind, allow: bool) -> None:
        self._user_choices[kind] = allow

    def fail_probe(self, kind: RequestKind, failing: bool = True) -> None:
        if failing:
            self._failing_probes.add(kind)
        else:
            self._failing_probes.discard(kind)

    def fail_action(self, kind: RequestKind, failing: bool = True) -> None:
        if failing:
            self._failing_actions.add(kind)
        else:
            self._failing_actions.discard(kind)

    async def status(self, kind: RequestKind) -> PermissionStatus:
        self.status_calls.append(kind)
        if kind in self._failing_probes:
            raise ProbeFailure(f"Status for {kind.value} unavailable")
        return self._statuses.get(kind, PermissionStatus.UNDETERMINED)

    async def request(self, kind: RequestKind) -> bool:
        self.request_calls.append(kind)
        if kind in self._failing_actions:
            raise ActionFailure(f"Consent flow for {kind.value} failed")

        current = self._statuses.get(kind, PermissionStatus.UNDETERMINED)
        if current != PermissionStatus.UNDETERMINED:
            # The OS only shows its consent dialog once.
            return current == PermissionStatus.GRANTED

        allow = self._user_choices.get(kind, True)
        self._statuses[kind] = (
            PermissionStatus.GRANTED if allow else PermissionStatus.DENIED
        )
        return allow


class CapabilityCatalog:
    """
    Registry of capability entries, one per RequestKind.

    Device permissions are wired to a PermissionProvider; the app rating kind
    is never probed (always UNDETERMINED) and its action shows the review prompt.
    """

    def __init__(
        self,
        provider: Optional[PermissionProvider] = None,
        settings_opener: Optional[SettingsOpener] = None,
        review_prompter: Optional[ReviewPrompter] = None,
    ):
        self.provider = provider or SimulatedPermissionProvider()
        self.settings_opener = settings_opener or open_app_in_settings
        self._review_prompter = review_prompter or _request_review
        self._entries: Dict[RequestKind, CapabilityEntry] = {}
        self._register_default_entries()

    def _register_default_entries(self) -> None:
        for kind, presentation in DEFAULT_PRESENTATIONS.items():
            if kind == RequestKind.APP_RATING:
                self.register(kind, presentation, self._probe_app_rating, self._review_prompter)
            else:
                self.register(
                    kind,
                    presentation,
                    self._provider_probe(kind),
                    self._provider_action(kind),
                )

    def _provider_probe(self, kind: RequestKind) -> Probe:
        async def probe() -> PermissionStatus:
            return await self.provider.status(kind)
        return probe

    def _provider_action(self, kind: RequestKind) -> Action:
        async def action() -> bool:
            return await self.provider.request(kind)
        return action

    @staticmethod
    async def _probe_app_rating() -> PermissionStatus:
        return PermissionStatus.UNDETERMINED

    def register(
        self,
        kind: RequestKind,
        presentation: RequestPresentation,
        probe: Probe,
        action: Action,
    ) -> None:
        """Register (or replace) the entry for a request kind."""
        self._entries[kind] = CapabilityEntry(
            kind=kind, presentation=presentation, probe=probe, action=action
        )

    def unregister(self, kind: RequestKind) -> None:
        self._entries.pop(kind, None)

    def get(self, kind: RequestKind) -> CapabilityEntry:
        entry = self._entries.get(kind)
        if entry is None:
            raise UnknownRequestKind(f"No capability registered for {kind.value}")
        return entry

    @property
    def kinds(self) -> List[RequestKind]:
        return list(self._entries)

    async def probe(self, kind: RequestKind) -> PermissionStatus:
        """Current grant state. Any failure is reported as UNDETERMINED."""
        entry = self.get(kind)
        try:
            return PermissionStatus(await entry.probe())
        except Exception as exc:
            _logger.warning("Probe for %s failed, treating as undetermined: %s", kind.value, exc)
            return PermissionStatus.UNDETERMINED

    async def perform_action(self, kind: RequestKind) -> bool:
        """Run the consent flow. Any failure is reported as a denial."""
        entry = self.get(kind)
        try:
            return bool(await entry.action())
        except Exception as exc:
            _logger.warning("Action for %s failed, treating as denial: %s", kind.value, exc)
            return False

    def open_settings(self) -> bool:
        try:
            self.settings_opener()
        except Exception as exc:
            _logger.warning("Could not open settings: %s", exc)
        return False
