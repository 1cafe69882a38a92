"""Capability Request — what producers ask the user for and how it is presented."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RequestKind(str, Enum):
    LOCATION_ACCESS = "location_access"
    CAMERA_ACCESS = "camera_access"
    PHOTOS_ACCESS = "photos_access"
    CONTACTS_ACCESS = "contacts_access"
    CALENDAR_ACCESS = "calendar_access"
    REMINDERS_ACCESS = "reminders_access"
    MICROPHONE_ACCESS = "microphone_access"
    APP_RATING = "app_rating"


class PermissionStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"              # User refused at the OS layer; only Settings can change it
    UNDETERMINED = "undetermined"  # Never asked, or asking again is still possible


class RequestState(str, Enum):
    """
    Lifecycle of a single pending request.

    created → probing → (undetermined_presenting | denied_presenting | auto_granted)
            → (granted | dismissed)

    A presenting request can also end up superseded when a newer request takes
    the active slot. Terminal states are absorbing.
    """
    CREATED = "created"
    PROBING = "probing"
    UNDETERMINED_PRESENTING = "undetermined_presenting"
    DENIED_PRESENTING = "denied_presenting"
    AUTO_GRANTED = "auto_granted"
    GRANTED = "granted"
    DISMISSED = "dismissed"
    SUPERSEDED = "superseded"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def is_presenting(self) -> bool:
        return self in (
            RequestState.UNDETERMINED_PRESENTING,
            RequestState.DENIED_PRESENTING,
        )


_TERMINAL_STATES = frozenset({
    RequestState.AUTO_GRANTED,
    RequestState.GRANTED,
    RequestState.DISMISSED,
    RequestState.SUPERSEDED,
})


class RequestPresentation(BaseModel):
    """Static presentation metadata for one request kind."""

    model_config = ConfigDict(frozen=True)

    symbol: str                         # SF Symbol name, e.g. "location.fill"
    title: str
    subtitle: str
    cta_text: str
    footer_note: Optional[str] = None
    dismiss_text: str = "Dismiss"


class PendingRequestView(BaseModel):
    """Read-only snapshot of the active request, handed to renderers."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: RequestKind
    state: RequestState
    presentation: RequestPresentation   # cta_text reflects the current binding
    settings_redirect: bool = False
    stale: bool = False
