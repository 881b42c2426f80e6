from __future__ import annotations

import logging
import re
import subprocess
from typing import Protocol

from .window import FULL_LOSS

logger = logging.getLogger(__name__)

LOSS_RE = re.compile(r"(\d+(?:\.\d+)?)%\s*packet loss")


class Prober(Protocol):
    def probe(self, target: str) -> int:
        """Return packet loss in percent (0-100). Never raises for a dead target."""
        ...


def parse_loss(output: str) -> int:
    """Extract the loss percentage from ping's summary line.

    Anything unparseable counts as full loss.
    """
    m = LOSS_RE.search(output or "")
    if not m:
        return FULL_LOSS
    loss = int(float(m.group(1)))
    return max(0, min(FULL_LOSS, loss))


class PingProber:
    """Probe a target with the system ping utility."""

    def __init__(self, timeout_s: int = 1, count: int = 1, ping_bin: str = "ping"):
        self.timeout_s = max(1, int(timeout_s))
        self.count = max(1, int(count))
        self.ping_bin = ping_bin

    def command(self, target: str) -> list[str]:
        return [self.ping_bin, "-c", str(self.count), "-W", str(self.timeout_s), target]

    def probe(self, target: str) -> int:
        try:
            proc = subprocess.run(
                self.command(target),
                capture_output=True,
                text=True,
                timeout=self.timeout_s * self.count,
            )
        except subprocess.TimeoutExpired:
            return FULL_LOSS
        except OSError as e:
            logger.warning("ping failed for %s: %s", target, e)
            return FULL_LOSS
        # ping writes resolver errors to stderr
        return parse_loss(proc.stdout + proc.stderr)
