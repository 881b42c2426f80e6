from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Iterator

from .settings import ServiceKey
from .state import HealthState
from .window import SlidingWindowTracker


def utc_now() -> str:
    return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class TargetState:
    """Everything the monitor knows about one backend.

    Only touched through RuntimeState.guard().
    """

    target: str
    tracker: SlidingWindowTracker
    state: HealthState = HealthState.UNKNOWN
    last_sample: int | None = None
    last_average: int = 0
    probes: int = 0
    transitions: int = 0
    updated_at: str | None = None

    def snapshot(self) -> TargetSnapshot:
        return TargetSnapshot(
            target=self.target,
            state=self.state,
            last_sample=self.last_sample,
            average=self.last_average,
            window_size=self.tracker.window_size,
            samples=self.tracker.samples(),
            probes=self.probes,
            transitions=self.transitions,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class TargetSnapshot:
    target: str
    state: HealthState
    last_sample: int | None
    average: int
    window_size: int
    samples: list[int] = field(default_factory=list)
    probes: int = 0
    transitions: int = 0
    updated_at: str | None = None


class RuntimeState:
    """Per-target health records, each behind its own lock."""

    def __init__(self, targets: list[str] | tuple[str, ...], window_size: int) -> None:
        self._targets: dict[str, TargetState] = {}
        self._locks: dict[str, Lock] = {}
        for t in targets:
            if t in self._targets:
                continue
            self._targets[t] = TargetState(target=t, tracker=SlidingWindowTracker(window_size))
            self._locks[t] = Lock()

    def targets(self) -> list[str]:
        return list(self._targets)

    @contextmanager
    def guard(self, target: str) -> Iterator[TargetState]:
        """Hold the target's lock and yield its mutable record."""
        lock = self._locks[target]
        with lock:
            yield self._targets[target]

    def get(self, target: str) -> TargetSnapshot | None:
        if target not in self._targets:
            return None
        with self.guard(target) as st:
            return st.snapshot()

    def snapshot(self) -> list[TargetSnapshot]:
        out: list[TargetSnapshot] = []
        for t in self._targets:
            with self.guard(t) as st:
                out.append(st.snapshot())
        return out


class ServiceRegistry:
    """Virtual services believed to exist on the load balancer.

    A cache, not the source of truth: ensure_service re-checks the balancer
    for keys missing here.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self._keys: set[str] = set()
        self._key_locks: dict[str, Lock] = {}

    def __contains__(self, svc: ServiceKey) -> bool:
        with self.lock:
            return svc.key in self._keys

    def add(self, svc: ServiceKey) -> None:
        with self.lock:
            self._keys.add(svc.key)

    def key_lock(self, svc: ServiceKey) -> Lock:
        """Lock serializing check-then-create for one service key."""
        with self.lock:
            lock = self._key_locks.get(svc.key)
            if lock is None:
                lock = self._key_locks[svc.key] = Lock()
            return lock

    def keys(self) -> list[str]:
        with self.lock:
            return sorted(self._keys)
