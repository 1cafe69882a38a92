"""Capability Bus data models."""

from capability_bus.models.config import BusConfig
from capability_bus.models.lifecycle import LifecyclePhase
from capability_bus.models.messages import (
    BusMessage,
    CapabilityRequestMessage,
    Channel,
    NotificationMessage,
)
from capability_bus.models.notification import (
    PREDEFINED_STYLES,
    HapticKind,
    NotificationContent,
    NotificationItem,
    NotificationSize,
    NotificationStyle,
    NotificationType,
)
from capability_bus.models.request import (
    PendingRequestView,
    PermissionStatus,
    RequestKind,
    RequestPresentation,
    RequestState,
)

__all__ = [
    "BusConfig",
    "BusMessage",
    "CapabilityRequestMessage",
    "Channel",
    "HapticKind",
    "LifecyclePhase",
    "NotificationContent",
    "NotificationItem",
    "NotificationMessage",
    "NotificationSize",
    "NotificationStyle",
    "NotificationType",
    "PREDEFINED_STYLES",
    "PendingRequestView",
    "PermissionStatus",
    "RequestKind",
    "RequestPresentation",
    "RequestState",
]
