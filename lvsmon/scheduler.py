from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Event, Thread
from typing import Callable

from .ipvs_ops import InMemoryController, IpvsadmController, LBController
from .prober import PingProber, Prober
from .reconciler import ReconciliationController
from .runtime import RuntimeState, ServiceRegistry, TargetSnapshot, utc_now
from .settings import Settings
from .state import HealthStateMachine

logger = logging.getLogger(__name__)


class ProbeScheduler:
    """Runs one probe -> evaluate -> reconcile loop per target, each on its own thread."""

    def __init__(
        self,
        runtime: RuntimeState,
        prober: Prober,
        machine: HealthStateMachine,
        reconciler: ReconciliationController,
        interval_s: float = 1.0,
        max_cycles: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runtime = runtime
        self.prober = prober
        self.machine = machine
        self.reconciler = reconciler
        self.interval_s = float(interval_s)
        self.max_cycles = max_cycles
        self._clock = clock
        self._stop = Event()
        self._threads: list[Thread] = []

    def start(self) -> None:
        if any(t.is_alive() for t in self._threads):
            return
        self._stop.clear()
        self._threads = [
            Thread(target=self._loop, args=(target,), name=f"probe-{target}", daemon=True)
            for target in self.runtime.targets()
        ]
        for t in self._threads:
            t.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        self.join(timeout)

    def join(self, timeout: float | None = None) -> None:
        for t in self._threads:
            t.join(timeout)

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def run_cycle(self, target: str) -> TargetSnapshot:
        # Probing may block up to the probe timeout; no lock held here.
        sample = self.prober.probe(target)

        with self.runtime.guard(target) as st:
            st.tracker.record(sample)
            avg = st.tracker.average()
            new_state, transitioned = self.machine.evaluate(avg, st.state)

            st.last_sample = sample
            st.last_average = avg
            st.probes += 1
            st.updated_at = utc_now()
            logger.info(
                "[CHECK] %s | Latest=%d%% | Avg(%ds)=%d%%", target, sample, st.tracker.window_size, avg
            )

            if transitioned:
                logger.info("%s: %s -> %s (avg %d%%)", target, st.state.value, new_state.value, avg)
                st.state = new_state
                st.transitions += 1
                # Reconcile under the guard so two transitions of one target never interleave.
                self.reconciler.apply(target, new_state)

            return st.snapshot()

    def _loop(self, target: str) -> None:
        cycles = 0
        while not self._stop.is_set():
            if self.max_cycles is not None and cycles >= self.max_cycles:
                return
            started = self._clock()
            try:
                self.run_cycle(target)
            except Exception:
                logger.exception("Probe cycle failed for %s", target)
            cycles += 1

            remaining = self.interval_s - (self._clock() - started)
            if remaining > 0:
                self._stop.wait(remaining)


@dataclass
class Monitor:
    runtime: RuntimeState
    registry: ServiceRegistry
    lb: LBController
    scheduler: ProbeScheduler


def build_monitor(
    cfg: Settings,
    prober: Prober | None = None,
    lb: LBController | None = None,
    max_cycles: int | None = None,
) -> Monitor:
    """Wire the monitor from settings. prober/lb override the real collaborators."""
    if lb is None:
        lb = InMemoryController() if cfg.dry_run else IpvsadmController(cfg.virtual_ip, cfg.ipvsadm_bin)
    if prober is None:
        prober = PingProber(cfg.ping_timeout_s, cfg.ping_count, cfg.ping_bin)

    runtime = RuntimeState(cfg.backends, cfg.window_seconds)
    registry = ServiceRegistry()
    reconciler = ReconciliationController(
        lb,
        cfg.service_keys(),
        registry,
        scheduling_policy=cfg.scheduling_policy,
        forwarding_mode=cfg.forwarding_mode,
    )
    scheduler = ProbeScheduler(
        runtime,
        prober,
        HealthStateMachine(cfg.loss_threshold),
        reconciler,
        interval_s=cfg.tick_interval_s,
        max_cycles=max_cycles,
    )
    return Monitor(runtime=runtime, registry=registry, lb=lb, scheduler=scheduler)
