"""
Capability Request Arbiter — the sole subscriber for capability requests.

Decides, per request, whether UI has to surface at all (nothing surfaces if
access is already granted) and resolves the producer's completion handle
exactly once.

States (per request):
  CREATED → PROBING → (UNDETERMINED_PRESENTING | DENIED_PRESENTING | AUTO_GRANTED)
          → (GRANTED | DISMISSED)
  A presenting request may instead end SUPERSEDED (last request wins).

Behavioral Contract:
- At most one request is presenting at a time (single-slot arena)
- A newer presenting request supersedes an unresolved older one; the older
  one's callbacks never run
- on_granted / on_dismiss run at most once per request
- Errors degrade to presenting the request, never to granting it
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Callable, List, Optional

from capability_bus.arbiter.completion import CompletionHandle
from capability_bus.bus.channel import RequestBus, Subscription
from capability_bus.catalog.registry import CapabilityCatalog, UnknownRequestKind
from capability_bus.models.config import BusConfig
from capability_bus.models.lifecycle import LifecyclePhase
from capability_bus.models.messages import CapabilityRequestMessage
from capability_bus.models.request import (
    PendingRequestView,
    PermissionStatus,
    RequestKind,
    RequestPresentation,
    RequestState,
)

_logger = logging.getLogger(__name__)

MAX_TRACKED_STATES = 256


class NoActiveRequest(LookupError):
    """Raised when accept/dismiss is called with no matching active request."""
    pass


class PendingRequest:
    """A request the arbiter is working on."""

    def __init__(
        self,
        request_id: str,
        kind: RequestKind,
        presentation: RequestPresentation,
        handle: CompletionHandle,
    ):
        self.id = request_id
        self.kind = kind
        self.presentation = presentation
        self.handle = handle
        self.state = RequestState.CREATED
        self.cta_text = presentation.cta_text
        self.settings_redirect = False
        self.stale = False
        self.action_in_flight = False

    def transition(self, state: RequestState) -> bool:
        """Move to ``state`` unless already terminal."""
        if self.state.is_terminal:
            return False
        self.state = state
        return True

    def bind_settings_redirect(self, cta_text: str) -> None:
        """Rebind the accept button to the settings opener, in place."""
        self.settings_redirect = True
        self.cta_text = cta_text
        if self.state == RequestState.UNDETERMINED_PRESENTING:
            self.state = RequestState.DENIED_PRESENTING

    def to_view(self) -> PendingRequestView:
        return PendingRequestView(
            id=self.id,
            kind=self.kind,
            state=self.state,
            presentation=self.presentation.model_copy(update={"cta_text": self.cta_text}),
            settings_redirect=self.settings_redirect,
            stale=self.stale,
        )


class ActiveRequestSlot:
    """
    Single-slot arena for the presenting request.

    stage() puts a request in the slot and hands back whatever it displaced;
    release() only clears the slot if it still holds that exact request.
    """

    def __init__(self):
        self._request: Optional[PendingRequest] = None

    @property
    def current(self) -> Optional[PendingRequest]:
        return self._request

    def stage(self, request: PendingRequest) -> Optional[PendingRequest]:
        displaced = self._request
        self._request = request
        if displaced is request:
            return None
        return displaced

    def release(self, request: PendingRequest) -> bool:
        if self._request is request:
            self._request = None
            return True
        return False


class CapabilityArbiter:
    """Consumes capability requests from the bus and arbitrates their UI."""

    def __init__(
        self,
        bus: RequestBus,
        catalog: CapabilityCatalog,
        config: Optional[BusConfig] = None,
        phase_provider: Optional[Callable[[], LifecyclePhase]] = None,
    ):
        self.bus = bus
        self.catalog = catalog
        self.config = config or BusConfig()
        self._phase_provider = phase_provider
        self._slot = ActiveRequestSlot()
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[Optional[PendingRequestView]], None]] = []
        self._states: "OrderedDict[str, RequestState]" = OrderedDict()

    @property
    def status(self) -> str:
        return "running" if self._task is not None and not self._task.done() else "stopped"

    @property
    def active(self) -> Optional[PendingRequestView]:
        """The request whose UI should currently be shown, if any."""
        request = self._slot.current
        return request.to_view() if request is not None else None

    def request_state(self, request_id: str) -> Optional[RequestState]:
        """Last known state of a recent request."""
        return self._states.get(request_id)

    def add_listener(self, listener: Callable[[Optional[PendingRequestView]], None]) -> None:
        """Register a renderer callback, invoked whenever the active request changes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[Optional[PendingRequestView]], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- Subscription ---

    def start(self) -> None:
        """Subscribe to the bus and start consuming. Requires a running loop."""
        if self._task is not None and not self._task.done():
            return
        self._subscription = self.bus.subscribe_to(
            CapabilityRequestMessage, name="capability_arbiter"
        )
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self._task is not None:
            await self._task
        self._subscription = None
        self._task = None

    async def _run(self) -> None:
        async for message in self._subscription:
            try:
                await self.handle(message)
            except Exception:
                _logger.exception("Failed to arbitrate request %s", message.request_id)

    # --- Arbitration ---

    async def handle(self, message: CapabilityRequestMessage) -> None:
        """Arbitrate a single capability request."""
        handle = CompletionHandle(
            on_granted=message.on_granted,
            on_dismiss=message.on_dismiss,
            label=f"{message.kind.value}:{message.request_id}",
        )
        try:
            entry = self.catalog.get(message.kind)
        except UnknownRequestKind:
            _logger.error("No capability registered for %s; dismissing %s",
                          message.kind.value, message.request_id)
            self._track(message.request_id, RequestState.DISMISSED)
            handle.dismiss()
            return

        request = PendingRequest(message.request_id, message.kind, entry.presentation, handle)
        self._set_state(request, RequestState.PROBING)
        status = await self.catalog.probe(request.kind)

        if status == PermissionStatus.GRANTED:
            _logger.debug("%s already granted; resolving %s", request.kind.value, request.id)
            self._set_state(request, RequestState.AUTO_GRANTED)
            request.handle.grant()
            return

        # The scene may have left the foreground while the probe was running.
        phase = self._phase_provider() if self._phase_provider is not None else LifecyclePhase.ACTIVE
        if phase == LifecyclePhase.BACKGROUND:
            _logger.info("Scene is in background; dismissing %s without presenting", request.id)
            self._set_state(request, RequestState.DISMISSED)
            request.handle.dismiss()
            return
        request.stale = not phase.is_foreground

        self._present(request, status)

    def _present(self, request: PendingRequest, status: PermissionStatus) -> None:
        if status == PermissionStatus.DENIED and request.kind != RequestKind.APP_RATING:
            self._set_state(request, RequestState.DENIED_PRESENTING)
            self._offer_settings(request)
        else:
            self._set_state(request, RequestState.UNDETERMINED_PRESENTING)

        displaced = self._slot.stage(request)
        if displaced is not None:
            _logger.info(
                "Request %s (%s) superseded by %s (%s); its callbacks will not run",
                displaced.id, displaced.kind.value, request.id, request.kind.value,
            )
            self._set_state(displaced, RequestState.SUPERSEDED)
            displaced.handle.abandon()

        _logger.info("Presenting %s for %s (%s)", request.kind.value, request.id, request.state.value)
        self._notify()

    def _current(self, request_id: Optional[str]) -> PendingRequest:
        request = self._slot.current
        if request is None:
            raise NoActiveRequest("No capability request is being presented")
        if request_id is not None and request.id != request_id:
            raise NoActiveRequest(f"Request {request_id} is not the active request")
        return request

    async def accept(self, request_id: Optional[str] = None) -> bool:
        """
        The user pressed the call-to-action.

        Returns True if access was obtained. When the settings redirect is
        bound, opens Settings, dismisses the request and returns False.
        """
        request = self._current(request_id)
        if request.action_in_flight:
            return False

        if request.settings_redirect:
            self.catalog.open_settings()
            self._finish(request, RequestState.DISMISSED)
            return False

        request.action_in_flight = True
        try:
            got_access = await self.catalog.perform_action(request.kind)
        finally:
            request.action_in_flight = False

        # Resolved while the OS dialog was up (lifecycle re-probe,
        # backgrounding or supersession).
        if request.state.is_terminal:
            return request.state == RequestState.GRANTED

        if got_access:
            self._finish(request, RequestState.GRANTED)
            return True

        if request.kind != RequestKind.APP_RATING:
            status = await self.catalog.probe(request.kind)
            if request.state.is_terminal:
                return request.state == RequestState.GRANTED
            if status == PermissionStatus.DENIED:
                _logger.info("%s denied at the OS layer; offering settings redirect", request.kind.value)
                self._offer_settings(request)
                self._notify()
                return False
            if status == PermissionStatus.GRANTED:
                self._finish(request, RequestState.GRANTED)
                return True

        self._finish(request, RequestState.DISMISSED)
        return False

    def dismiss(self, request_id: Optional[str] = None) -> None:
        """The user declined (Dismiss / Later)."""
        request = self._current(request_id)
        self._finish(request, RequestState.DISMISSED)

    def _finish(self, request: PendingRequest, state: RequestState) -> None:
        if not self._set_state(request, state):
            return
        self._slot.release(request)
        _logger.info("Request %s (%s) %s", request.id, request.kind.value, state.value)
        if state == RequestState.GRANTED:
            request.handle.grant()
        else:
            request.handle.dismiss()
        self._notify()

    # --- Lifecycle reconciliation ---

    async def reconcile(self, phase: LifecyclePhase) -> None:
        """
        Re-evaluate the presenting request after a lifecycle transition.

        Leaving the foreground marks it stale (and dismisses it when going to
        the background). Returning re-probes: a grant made meanwhile (e.g. in
        Settings) resolves the request without another tap.
        """
        request = self._slot.current
        if request is None or not request.state.is_presenting:
            return

        if not phase.is_foreground:
            request.stale = True
            if phase == LifecyclePhase.BACKGROUND:
                _logger.info("Scene moved to background; dismissing %s", request.id)
                self._finish(request, RequestState.DISMISSED)
            else:
                self._notify()
            return

        # Probing the rating kind has side effects on the rate limiter.
        if request.kind == RequestKind.APP_RATING:
            request.stale = False
            self._notify()
            return

        status = await self.catalog.probe(request.kind)
        if self._slot.current is not request or request.state.is_terminal:
            return

        request.stale = False
        if status == PermissionStatus.GRANTED:
            self._finish(request, RequestState.GRANTED)
            return
        if status == PermissionStatus.DENIED:
            self._offer_settings(request)
        self._notify()

    # --- Internals ---

    def _offer_settings(self, request: PendingRequest) -> None:
        request.bind_settings_redirect(self.config.settings_cta_text)
        self._track(request.id, request.state)

    def _set_state(self, request: PendingRequest, state: RequestState) -> bool:
        if not request.transition(state):
            return False
        self._track(request.id, state)
        return True

    def _track(self, request_id: str, state: RequestState) -> None:
        self._states[request_id] = state
        self._states.move_to_end(request_id)
        while len(self._states) > MAX_TRACKED_STATES:
            self._states.popitem(last=False)

    def _notify(self) -> None:
        view = self.active
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                _logger.exception("Active request listener raised")
