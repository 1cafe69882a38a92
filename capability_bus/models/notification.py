"""In-app notification content, styles and queued items."""

from datetime import datetime
from enum import Enum
from typing import Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class NotificationSize(str, Enum):
    NORMAL = "normal"
    COMPACT = "compact"    # For quick info


class HapticKind(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    message: str


class NotificationStyle(BaseModel):
    """Visual style of a notification. Two styles are equal when every field matches."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    color: str
    size: NotificationSize = NotificationSize.NORMAL
    haptic: HapticKind = HapticKind.WARNING

    def with_size(self, size: NotificationSize) -> "NotificationStyle":
        return self.model_copy(update={"size": size})


class NotificationType(str, Enum):
    """Predefined notification styles."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def style(self) -> NotificationStyle:
        return PREDEFINED_STYLES[self]


PREDEFINED_STYLES = {
    NotificationType.ERROR: NotificationStyle(
        symbol="exclamationmark.triangle", color="red",
        size=NotificationSize.COMPACT, haptic=HapticKind.ERROR,
    ),
    NotificationType.WARNING: NotificationStyle(
        symbol="exclamationmark.triangle", color="yellow",
        size=NotificationSize.COMPACT, haptic=HapticKind.WARNING,
    ),
    NotificationType.INFO: NotificationStyle(
        symbol="info.circle", color="blue",
        size=NotificationSize.COMPACT, haptic=HapticKind.WARNING,
    ),
    NotificationType.SUCCESS: NotificationStyle(
        symbol="checkmark.circle", color="green",
        size=NotificationSize.COMPACT, haptic=HapticKind.SUCCESS,
    ),
    NotificationType.FAILURE: NotificationStyle(
        symbol="xmark.circle", color="red",
        size=NotificationSize.COMPACT, haptic=HapticKind.ERROR,
    ),
}


class NotificationItem(BaseModel):
    """
    A single queued notification.

    Owned by the NotificationQueue from emission until it is removed by a
    swipe, a tap-triggered dismissal, capacity eviction or timer expiry.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    content: NotificationContent
    style: NotificationStyle
    on_tap: Optional[Callable[[], None]] = Field(default=None, exclude=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def same_as(self, other: "NotificationItem") -> bool:
        """True when both items would render identically."""
        return self.content == other.content and self.style == other.style
