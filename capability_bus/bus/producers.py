"""
Producer-facing API.

Producers only need the bus: they never hold a reference to the arbiter or
the notification queue that eventually renders their request.
"""

from typing import Callable, Optional

from capability_bus.bus.channel import RequestBus
from capability_bus.models.messages import CapabilityRequestMessage, NotificationMessage
from capability_bus.models.notification import (
    NotificationContent,
    NotificationItem,
    NotificationSize,
    NotificationStyle,
    NotificationType,
)
from capability_bus.models.request import RequestKind


def request_capability(
    bus: RequestBus,
    kind: RequestKind,
    on_granted: Optional[Callable[[], None]] = None,
    on_dismiss: Optional[Callable[[], None]] = None,
) -> str:
    """
    Ask the user for something (a permission, a rating, ...).

    ``on_granted`` runs if access is (or already was) obtained, ``on_dismiss``
    if the user declines. At most one of them ever runs, and only once.
    Returns the request id.
    """
    message = CapabilityRequestMessage(
        kind=kind, on_granted=on_granted, on_dismiss=on_dismiss
    )
    bus.emit(message)
    return message.request_id


def show_notification(
    bus: RequestBus,
    notification_type: NotificationType,
    content: NotificationContent,
    size: Optional[NotificationSize] = None,
    on_tap: Optional[Callable[[], None]] = None,
) -> str:
    """Show an in-app notification with a predefined style. Returns the item id."""
    style = notification_type.style
    if size is not None:
        style = style.with_size(size)
    return show_custom_notification(bus, content, style, on_tap=on_tap)


def show_custom_notification(
    bus: RequestBus,
    content: NotificationContent,
    style: NotificationStyle,
    on_tap: Optional[Callable[[], None]] = None,
) -> str:
    """Show an in-app notification with a custom style. Returns the item id."""
    item = NotificationItem(content=content, style=style, on_tap=on_tap)
    bus.emit(NotificationMessage(item=item))
    return item.id
