"""
Capability Bus API — FastAPI endpoints for an out-of-process renderer.

Exposes the same hooks an in-process renderer would call:
- Capability requests (emit, inspect, accept, dismiss)
- In-app notifications (emit, list, tap, swipe)
- Scene lifecycle transitions
- Positive actions for the rating gate
"""

from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from capability_bus.arbiter.arbiter import MAX_TRACKED_STATES, NoActiveRequest
from capability_bus.core.config import load_config
from capability_bus.core.logging import configure_logging
from capability_bus.models.config import BusConfig
from capability_bus.models.lifecycle import LifecyclePhase
from capability_bus.models.messages import CapabilityRequestMessage
from capability_bus.models.notification import (
    HapticKind,
    NotificationContent,
    NotificationSize,
    NotificationStyle,
    NotificationType,
)
from capability_bus.models.request import RequestKind
from capability_bus.notifications.queue import UnknownNotification
from capability_bus.runtime import BusRuntime


# --- Request/Response Models ---

class CapabilityRequestCreate(BaseModel):
    kind: RequestKind


class NotificationCreateRequest(BaseModel):
    type: NotificationType
    title: str
    message: str
    size: Optional[NotificationSize] = None


class CustomStyleRequest(BaseModel):
    symbol: str
    color: str
    size: NotificationSize = NotificationSize.NORMAL
    haptic: HapticKind = HapticKind.WARNING


class CustomNotificationCreateRequest(BaseModel):
    title: str
    message: str
    style: CustomStyleRequest


class LifecycleTransitionRequest(BaseModel):
    phase: LifecyclePhase


# --- Application Factory ---

def create_app(
    runtime: Optional[BusRuntime] = None,
    config: Optional[BusConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    rt = runtime or BusRuntime(config=config or load_config())
    configure_logging(rt.config.log_level, log_format=rt.config.log_format)

    # Outcomes of requests emitted through the API, keyed by request id.
    # Bounded like the arbiter's own state history.
    outcomes: "OrderedDict[str, str]" = OrderedDict()

    def _record_outcome(request_id: str, outcome: str) -> None:
        if request_id in outcomes:
            outcomes[request_id] = outcome

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await rt.start()
        try:
            yield
        finally:
            await rt.stop()

    app = FastAPI(
        title="Capability Bus API",
        description="Capability requests and in-app notifications",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.runtime = rt
    app.state.outcomes = outcomes

    def _active_payload():
        view = rt.arbiter.active
        return view.model_dump(mode="json") if view is not None else None

    def _notifications_payload():
        return [item.model_dump(mode="json") for item in rt.notifications.items]

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "arbiter": rt.arbiter.status,
            "phase": rt.lifecycle.phase.value,
        }

    # === CAPABILITY REQUESTS ===

    @app.post("/capabilities/requests")
    async def create_capability_request(req: CapabilityRequestCreate):
        """Ask the user for a capability."""
        request_id = f"req_{uuid4().hex[:12]}"
        outcomes[request_id] = "pending"
        while len(outcomes) > MAX_TRACKED_STATES:
            outcomes.popitem(last=False)

        def on_granted():
            _record_outcome(request_id, "granted")

        def on_dismiss():
            _record_outcome(request_id, "dismissed")

        rt.bus.emit(CapabilityRequestMessage(
            request_id=request_id,
            kind=req.kind,
            on_granted=on_granted,
            on_dismiss=on_dismiss,
        ))
        await rt.settle()
        state = rt.arbiter.request_state(request_id)
        return {
            "request_id": request_id,
            "state": state.value if state else None,
            "outcome": outcomes.get(request_id),
            "active": _active_payload(),
        }

    @app.get("/capabilities/requests/{request_id}")
    def get_capability_request(request_id: str):
        state = rt.arbiter.request_state(request_id)
        if state is None:
            raise HTTPException(404, "Request not found")
        return {
            "request_id": request_id,
            "state": state.value,
            "outcome": outcomes.get(request_id),
        }

    @app.get("/capabilities/active")
    def get_active_request():
        """The request the renderer should currently present, if any."""
        return {"active": _active_payload()}

    @app.post("/capabilities/active/accept")
    async def accept_active_request(request_id: Optional[str] = None):
        try:
            granted = await rt.arbiter.accept(request_id)
        except NoActiveRequest as e:
            raise HTTPException(404, str(e))
        return {"granted": granted, "active": _active_payload()}

    @app.post("/capabilities/active/dismiss")
    async def dismiss_active_request(request_id: Optional[str] = None):
        try:
            rt.arbiter.dismiss(request_id)
        except NoActiveRequest as e:
            raise HTTPException(404, str(e))
        return {"status": "dismissed", "active": _active_payload()}

    # === NOTIFICATIONS ===

    @app.get("/notifications")
    def list_notifications():
        """Shown notifications, newest first."""
        return _notifications_payload()

    @app.post("/notifications")
    async def create_notification(req: NotificationCreateRequest):
        item_id = rt.show_notification(
            req.type,
            NotificationContent(title=req.title, message=req.message),
            size=req.size,
        )
        await rt.settle()
        return {
            "id": item_id,
            "shown": rt.notifications.get(item_id) is not None,
            "notifications": _notifications_payload(),
        }

    @app.post("/notifications/custom")
    async def create_custom_notification(req: CustomNotificationCreateRequest):
        item_id = rt.show_custom_notification(
            NotificationContent(title=req.title, message=req.message),
            NotificationStyle(**req.style.model_dump()),
        )
        await rt.settle()
        return {
            "id": item_id,
            "shown": rt.notifications.get(item_id) is not None,
            "notifications": _notifications_payload(),
        }

    @app.post("/notifications/{item_id}/tap")
    async def tap_notification(item_id: str, dismiss: bool = False):
        try:
            rt.notifications.tap(item_id, dismiss=dismiss)
        except UnknownNotification as e:
            raise HTTPException(404, str(e))
        return {"status": "tapped", "notifications": _notifications_payload()}

    @app.delete("/notifications/{item_id}")
    async def swipe_notification(item_id: str):
        """Swipe a notification away. Idempotent."""
        removed = rt.notifications.swipe(item_id)
        return {"removed": removed, "notifications": _notifications_payload()}

    # === LIFECYCLE ===

    @app.get("/lifecycle")
    def get_lifecycle():
        return {"phase": rt.lifecycle.phase.value}

    @app.post("/lifecycle")
    async def transition_lifecycle(req: LifecycleTransitionRequest):
        changed = await rt.lifecycle.transition(req.phase)
        return {
            "phase": rt.lifecycle.phase.value,
            "changed": changed,
            "active": _active_payload(),
        }

    # === RATING ===

    @app.post("/rating/positive-actions")
    async def record_positive_action():
        request_id = rt.rating.record_positive_action()
        if request_id is not None:
            await rt.settle()
        return {
            "count": rt.rating.positive_action_count,
            "rating_request_id": request_id,
            "active": _active_payload(),
        }

    return app
