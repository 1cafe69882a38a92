"""Scene lifecycle phases supplied by the host environment."""

from enum import Enum


class LifecyclePhase(str, Enum):
    ACTIVE = "active"           # Foreground and receiving events
    INACTIVE = "inactive"       # Foreground but interrupted (system alert, app switcher)
    BACKGROUND = "background"

    @property
    def is_foreground(self) -> bool:
        return self is LifecyclePhase.ACTIVE
