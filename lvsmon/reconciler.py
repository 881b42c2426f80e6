from __future__ import annotations

import logging
import sqlite3
from typing import Callable

from . import db
from .ipvs_ops import CommandResult, LBController, validate_forwarding_mode
from .runtime import ServiceRegistry
from .settings import ServiceKey
from .state import HealthState

logger = logging.getLogger(__name__)


class ReconciliationController:
    """Turns UP/DOWN transitions into real-server membership changes.

    Every balancer call is best effort: failures are logged and never retried.
    Health state is already committed by the time this runs, so a failed call
    leaves the balancer out of sync until the next transition for that target.
    """

    def __init__(
        self,
        lb: LBController,
        services: list[ServiceKey],
        registry: ServiceRegistry,
        scheduling_policy: str = "rr",
        forwarding_mode: str = "masq",
    ):
        validate_forwarding_mode(forwarding_mode)
        self.lb = lb
        self.services = list(services)
        self.registry = registry
        self.scheduling_policy = scheduling_policy
        self.forwarding_mode = forwarding_mode

    def apply(self, target: str, new_state: HealthState) -> None:
        if new_state is HealthState.UP:
            self.on_became_up(target)
        elif new_state is HealthState.DOWN:
            self.on_became_down(target)

    def on_became_up(self, target: str) -> None:
        added = 0
        for svc in self.services:
            self.ensure_service(svc)
            res = self._call(
                f"add {target} to {svc.key}",
                lambda: self.lb.add_real_server(svc.transport, svc.port, target, self.forwarding_mode),
            )
            if res.ok:
                added += 1
            else:
                # ipvsadm rejects re-adding an existing destination; harmless
                logger.warning("Could not add %s to %s: %s", target, svc.key, res.detail)

        if added == len(self.services):
            self._event("INFO", f"Added {target} back to LVS", target)
        elif added:
            self._event("WARN", f"Added {target} to {added}/{len(self.services)} services", target)
        else:
            self._event("WARN", f"Could not add {target} to any service", target)

    def on_became_down(self, target: str) -> None:
        for svc in self.services:
            res = self._call(
                f"remove {target} from {svc.key}",
                lambda: self.lb.remove_real_server(svc.transport, svc.port, target),
            )
            if not res.ok:
                logger.warning("Could not remove %s from %s: %s", target, svc.key, res.detail)
        self._event("WARN", f"Removed {target} from LVS", target)

    def ensure_service(self, svc: ServiceKey) -> bool:
        """Make sure the virtual service exists. Returns True if it was created here."""
        with self.registry.key_lock(svc):
            if svc in self.registry:
                return False
            # The registry can be stale (restart, manual ipvsadm); ask the balancer.
            exists = self._call(
                f"check {svc.key}",
                lambda: CommandResult(self.lb.service_exists(svc.transport, svc.port)),
            ).ok
            if exists:
                self.registry.add(svc)
                return False

            res = self._call(
                f"create {svc.key}",
                lambda: self.lb.create_service(svc.transport, svc.port, self.scheduling_policy),
            )
            if not res.ok:
                logger.warning("Could not create service %s: %s", svc.key, res.detail)
                return False
            self.registry.add(svc)
            self._event("INFO", f"Created {svc.transport.value} service on port {svc.port}")
            return True

    def _call(self, what: str, fn: Callable[[], CommandResult]) -> CommandResult:
        try:
            return fn()
        except Exception as e:
            logger.warning("Balancer call failed (%s): %s: %s", what, type(e).__name__, e)
            return CommandResult(False, f"{type(e).__name__}: {e}")

    def _event(self, level: str, message: str, target: str | None = None) -> None:
        logger.log(logging.WARNING if level == "WARN" else logging.INFO, message)
        try:
            db.log_event(level, message, target=target)
        except (sqlite3.Error, OSError) as e:
            logger.warning("Could not record event: %s", e)
