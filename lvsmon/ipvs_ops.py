from __future__ import annotations

import ipaddress
import logging
import subprocess
from dataclasses import dataclass
from threading import Lock
from typing import Protocol

from .settings import Transport

logger = logging.getLogger(__name__)

FORWARDING_FLAGS = {
    "masq": "-m",
    "gatewaying": "-g",
    "ipip": "-i",
}


def validate_forwarding_mode(mode: str) -> str:
    if mode not in FORWARDING_FLAGS:
        raise ValueError(f"Invalid forwarding mode {mode!r}. Use one of: {', '.join(sorted(FORWARDING_FLAGS))}.")
    return FORWARDING_FLAGS[mode]


def validate_virtual_ip(addr: str) -> None:
    try:
        ipaddress.ip_address(addr)
    except ValueError:
        raise ValueError(f"Invalid virtual IP: {addr!r}") from None


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    detail: str = ""


class LBController(Protocol):
    def service_exists(self, transport: Transport, port: int) -> bool: ...

    def create_service(self, transport: Transport, port: int, scheduling_policy: str) -> CommandResult: ...

    def add_real_server(self, transport: Transport, port: int, target: str, mode: str) -> CommandResult: ...

    def remove_real_server(self, transport: Transport, port: int, target: str) -> CommandResult: ...


class IpvsadmController:
    """LBController backed by the ipvsadm CLI (needs CAP_NET_ADMIN)."""

    def __init__(self, virtual_ip: str, ipvsadm_bin: str = "ipvsadm", timeout_s: float = 5.0):
        validate_virtual_ip(virtual_ip)
        self.virtual_ip = virtual_ip
        self.ipvsadm_bin = ipvsadm_bin
        self.timeout_s = timeout_s

    def _vip(self, port: int) -> str:
        if ":" in self.virtual_ip:
            return f"[{self.virtual_ip}]:{int(port)}"
        return f"{self.virtual_ip}:{int(port)}"

    def _real(self, target: str, port: int) -> str:
        if ":" in target:
            return f"[{target}]:{int(port)}"
        return f"{target}:{int(port)}"

    def _run(self, args: list[str]) -> CommandResult:
        cmd = [self.ipvsadm_bin, *args]
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_s)
        except subprocess.TimeoutExpired:
            return CommandResult(False, f"timed out after {self.timeout_s}s")
        except OSError as e:
            return CommandResult(False, f"{type(e).__name__}: {e}")
        if proc.returncode != 0:
            return CommandResult(False, (proc.stderr or proc.stdout).strip() or f"exit {proc.returncode}")
        return CommandResult(True, proc.stdout.strip())

    def service_exists(self, transport: Transport, port: int) -> bool:
        res = self._run(["-L", "-n"])
        if not res.ok:
            logger.warning("ipvsadm -L failed: %s", res.detail)
            return False
        vip = self._vip(port)
        for line in res.detail.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0] == transport.value and parts[1] == vip:
                return True
        return False

    def create_service(self, transport: Transport, port: int, scheduling_policy: str) -> CommandResult:
        return self._run(["-A", transport.flag, self._vip(port), "-s", scheduling_policy])

    def add_real_server(self, transport: Transport, port: int, target: str, mode: str) -> CommandResult:
        flag = validate_forwarding_mode(mode)
        return self._run(["-a", transport.flag, self._vip(port), "-r", self._real(target, port), flag])

    def remove_real_server(self, transport: Transport, port: int, target: str) -> CommandResult:
        return self._run(["-d", transport.flag, self._vip(port), "-r", self._real(target, port)])


class InMemoryController:
    """In-process IPVS table for dry runs and tests.

    Mirrors ipvsadm's answers: duplicates and missing entries are rejected.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self.services: dict[tuple[Transport, int], str] = {}  # -> scheduling policy
        self.real_servers: dict[tuple[Transport, int], set[str]] = {}
        self.calls: list[tuple] = []

    def service_exists(self, transport: Transport, port: int) -> bool:
        with self.lock:
            self.calls.append(("exists", transport, port))
            return (transport, port) in self.services

    def create_service(self, transport: Transport, port: int, scheduling_policy: str) -> CommandResult:
        with self.lock:
            self.calls.append(("create", transport, port, scheduling_policy))
            if (transport, port) in self.services:
                return CommandResult(False, "Service already exists")
            self.services[(transport, port)] = scheduling_policy
            self.real_servers[(transport, port)] = set()
            return CommandResult(True)

    def add_real_server(self, transport: Transport, port: int, target: str, mode: str) -> CommandResult:
        validate_forwarding_mode(mode)
        with self.lock:
            self.calls.append(("add", transport, port, target))
            members = self.real_servers.get((transport, port))
            if members is None:
                return CommandResult(False, "Service not defined")
            if target in members:
                return CommandResult(False, "Destination already exists")
            members.add(target)
            return CommandResult(True)

    def remove_real_server(self, transport: Transport, port: int, target: str) -> CommandResult:
        with self.lock:
            self.calls.append(("remove", transport, port, target))
            members = self.real_servers.get((transport, port))
            if members is None:
                return CommandResult(False, "Service not defined")
            if target not in members:
                return CommandResult(False, "No such destination")
            members.discard(target)
            return CommandResult(True)

    def members(self, transport: Transport, port: int) -> set[str]:
        with self.lock:
            return set(self.real_servers.get((transport, port), set()))
