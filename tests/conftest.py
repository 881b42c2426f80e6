import dataclasses
import random
import sys
import threading
import time

import pytest


# Ensure project root is importable (so `import main` works without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from lvsmon import db  # noqa: E402
from lvsmon.settings import settings  # noqa: E402


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Point the event log at an isolated sqlite file for every test."""
    monkeypatch.setattr(db, "settings", dataclasses.replace(settings, db_path=str(tmp_path / "events.db")))
    db.init_db()
    return db


class ScriptedProber:
    """Returns a fixed sample sequence per target, optionally with latency jitter."""

    def __init__(self, script, jitter_s=0.0, seed=0):
        self._script = {t: list(samples) for t, samples in script.items()}
        self._pos = {t: 0 for t in script}
        self._lock = threading.Lock()
        self._jitter_s = jitter_s
        self._rng = random.Random(seed)
        self.calls = []

    def probe(self, target):
        with self._lock:
            i = self._pos[target]
            self._pos[target] = i + 1
            sample = self._script[target][i % len(self._script[target])]
            delay = self._rng.uniform(0, self._jitter_s) if self._jitter_s else 0.0
            self.calls.append(target)
        if delay:
            time.sleep(delay)
        return sample


@pytest.fixture
def scripted_prober():
    return ScriptedProber
