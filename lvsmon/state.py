from __future__ import annotations

from enum import Enum


class HealthState(str, Enum):
    UNKNOWN = "UNKNOWN"
    UP = "UP"
    DOWN = "DOWN"


class HealthStateMachine:
    """Single-threshold UP/DOWN classifier.

    No hysteresis: one tick across the threshold flips the state. The boundary
    belongs to DOWN (avg >= threshold). UNKNOWN is only ever an initial state.
    """

    def __init__(self, loss_threshold: int):
        self.loss_threshold = int(loss_threshold)

    def evaluate(self, average_loss: int, current: HealthState) -> tuple[HealthState, bool]:
        """Return (new_state, transitioned)."""
        if average_loss >= self.loss_threshold and current is not HealthState.DOWN:
            return HealthState.DOWN, True
        if average_loss < self.loss_threshold and current is not HealthState.UP:
            return HealthState.UP, True
        return current, False
