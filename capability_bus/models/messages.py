"""Typed messages carried by the Request Bus."""

from datetime import datetime
from enum import Enum
from typing import Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from capability_bus.models.notification import NotificationItem
from capability_bus.models.request import RequestKind


class Channel(str, Enum):
    CAPABILITY_REQUESTS = "capability_requests"
    NOTIFICATIONS = "notifications"


class BusMessage(BaseModel):
    """Base of every bus message. Subscribers filter on ``channel``."""

    model_config = ConfigDict(frozen=True)

    channel: Channel
    emitted_at: datetime = Field(default_factory=datetime.utcnow)


class CapabilityRequestMessage(BusMessage):
    """A producer asking the user for a capability."""

    channel: Channel = Channel.CAPABILITY_REQUESTS
    request_id: str = Field(default_factory=lambda: f"req_{uuid4().hex[:12]}")
    kind: RequestKind
    on_granted: Optional[Callable[[], None]] = Field(default=None, exclude=True)
    on_dismiss: Optional[Callable[[], None]] = Field(default=None, exclude=True)


class NotificationMessage(BusMessage):
    """A producer asking for an in-app notification to be shown."""

    channel: Channel = Channel.NOTIFICATIONS
    item: NotificationItem
