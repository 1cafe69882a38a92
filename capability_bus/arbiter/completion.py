"""One-shot completion handle for a producer's callbacks."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

_logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    GRANTED = "granted"
    DISMISSED = "dismissed"
    ABANDONED = "abandoned"     # Superseded; no callback ever runs


class CompletionHandle:
    """
    Wraps ``on_granted``/``on_dismiss`` so that at most one of them runs, once.

    The first call to grant(), dismiss() or abandon() wins; later calls are
    ignored and return False.
    """

    def __init__(
        self,
        on_granted: Optional[Callable[[], None]] = None,
        on_dismiss: Optional[Callable[[], None]] = None,
        label: str = "request",
    ):
        self._on_granted = on_granted
        self._on_dismiss = on_dismiss
        self.label = label
        self.outcome: Optional[Outcome] = None

    @property
    def resolved(self) -> bool:
        return self.outcome is not None

    def grant(self) -> bool:
        return self._resolve(Outcome.GRANTED, self._on_granted)

    def dismiss(self) -> bool:
        return self._resolve(Outcome.DISMISSED, self._on_dismiss)

    def abandon(self) -> bool:
        return self._resolve(Outcome.ABANDONED, None)

    def _resolve(self, outcome: Outcome, callback: Optional[Callable[[], None]]) -> bool:
        if self.outcome is not None:
            return False
        self.outcome = outcome
        # Drop the references so captured producer state can be collected.
        self._on_granted = None
        self._on_dismiss = None
        if callback is not None:
            try:
                callback()
            except Exception:
                _logger.exception("Callback for %s (%s) raised", self.label, outcome.value)
        return True
