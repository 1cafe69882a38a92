"""
Scene-Lifecycle Gate — reconciles capability state across foreground/background
transitions.

The host environment reports every phase change through transition(); the
gate records the process-wide phase and asks each registered participant to
reconcile, in registration order.
"""

from __future__ import annotations

import logging
from typing import List, Protocol

from capability_bus.models.lifecycle import LifecyclePhase

_logger = logging.getLogger(__name__)


class LifecycleParticipant(Protocol):
    async def reconcile(self, phase: LifecyclePhase) -> None: ...


class SceneLifecycleGate:
    def __init__(self, initial_phase: LifecyclePhase = LifecyclePhase.ACTIVE):
        self._phase = initial_phase
        self._participants: List[LifecycleParticipant] = []
        self.transition_count = 0

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    @property
    def is_foreground(self) -> bool:
        return self._phase.is_foreground

    def current_phase(self) -> LifecyclePhase:
        return self._phase

    def register(self, participant: LifecycleParticipant) -> None:
        if participant not in self._participants:
            self._participants.append(participant)

    def unregister(self, participant: LifecycleParticipant) -> None:
        if participant in self._participants:
            self._participants.remove(participant)

    async def transition(self, phase: LifecyclePhase) -> bool:
        """
        Record a phase change and reconcile every participant.

        Returns False (and does nothing) if the phase did not change.
        """
        phase = LifecyclePhase(phase)
        if phase == self._phase:
            return False

        previous = self._phase
        self._phase = phase
        self.transition_count += 1
        _logger.info("Scene phase %s -> %s", previous.value, phase.value)

        for participant in list(self._participants):
            try:
                await participant.reconcile(phase)
            except Exception:
                _logger.exception("Lifecycle reconciliation failed for %r", participant)
        return True
