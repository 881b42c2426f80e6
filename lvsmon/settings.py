from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum


class Transport(str, Enum):
    TCP = "TCP"
    UDP = "UDP"

    @property
    def flag(self) -> str:
        """ipvsadm service type switch."""
        return "-t" if self.value == "TCP" else "-u"


@dataclass(frozen=True)
class ServiceKey:
    transport: Transport
    port: int

    @property
    def key(self) -> str:
        return f"{self.transport.value}:{self.port}"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(x.strip() for x in raw.split(",") if x.strip())


def expand_ports(raw: tuple[str, ...] | list[str]) -> list[int]:
    """Expand "80" / "11000-12000" entries into a flat port list.

    A reversed range ("12000-11000") expands to nothing. Duplicates are dropped,
    first occurrence wins.
    """
    out: list[int] = []
    seen: set[int] = set()
    for entry in raw:
        entry = entry.strip()
        if "-" in entry:
            lo_raw, _, hi_raw = entry.partition("-")
            try:
                lo, hi = int(lo_raw), int(hi_raw)
            except ValueError:
                raise ValueError(f"Invalid port range: {entry!r}") from None
            ports = range(lo, hi + 1)
        else:
            try:
                ports = range(int(entry), int(entry) + 1)
            except ValueError:
                raise ValueError(f"Invalid port: {entry!r}") from None

        for p in ports:
            if not 1 <= p <= 65535:
                raise ValueError(f"Port out of range (1-65535): {p}")
            if p not in seen:
                seen.add(p)
                out.append(p)
    return out


@dataclass(frozen=True)
class Settings:
    # Backends / virtual service
    backends: tuple[str, ...] = _env_list("LVSMON_BACKENDS", "10.1.1.2,10.1.1.3")
    virtual_ip: str = os.getenv("LVSMON_VIRTUAL_IP", "127.0.0.1")
    tcp_services: tuple[str, ...] = _env_list("LVSMON_TCP_SERVICES", "80,443")
    udp_services: tuple[str, ...] = _env_list("LVSMON_UDP_SERVICES", "")

    # Health evaluation
    loss_threshold: int = _env_int("LVSMON_LOSS_THRESHOLD", 5)  # % at or above which a backend is dropped
    window_seconds: int = _env_int("LVSMON_WINDOW_SECONDS", 60)  # samples kept for the moving average
    ping_timeout_s: int = _env_int("LVSMON_PING_TIMEOUT_S", 1)
    ping_count: int = _env_int("LVSMON_PING_COUNT", 1)
    tick_interval_s: float = _env_float("LVSMON_TICK_INTERVAL_S", 1.0)

    # IPVS
    scheduling_policy: str = os.getenv("LVSMON_SCHEDULING_POLICY", "rr")
    forwarding_mode: str = os.getenv("LVSMON_FORWARDING_MODE", "masq")
    ipvsadm_bin: str = os.getenv("LVSMON_IPVSADM_BIN", "ipvsadm")
    ping_bin: str = os.getenv("LVSMON_PING_BIN", "ping")
    # Keep membership in memory only; nothing touches the kernel table.
    dry_run: bool = _env_bool("LVSMON_DRY_RUN", False)

    # Process
    db_path: str = os.getenv("LVSMON_DB_PATH", "lvsmon.db")
    log_level: str = os.getenv("LVSMON_LOG_LEVEL", "INFO")

    def __post_init__(self) -> None:
        if not self.backends:
            raise ValueError("At least one backend is required (LVSMON_BACKENDS).")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1.")
        if not 1 <= self.loss_threshold <= 100:
            raise ValueError("loss_threshold must be between 1 and 100.")
        if self.ping_timeout_s < 1 or self.ping_count < 1:
            raise ValueError("ping_timeout_s and ping_count must be >= 1.")
        if self.tick_interval_s <= 0:
            raise ValueError("tick_interval_s must be > 0.")

    def service_keys(self) -> list[ServiceKey]:
        keys = [ServiceKey(Transport.TCP, p) for p in expand_ports(self.tcp_services)]
        keys += [ServiceKey(Transport.UDP, p) for p in expand_ports(self.udp_services)]
        return keys


settings = Settings()
