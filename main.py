from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Query

from lvsmon import db
from lvsmon.api_models import EventOut, ServicesOut, TargetStatusOut
from lvsmon.scheduler import Monitor, build_monitor
from lvsmon.settings import settings

logger = logging.getLogger("lvsmon")

app = FastAPI(title="LVS Health Monitor")

# Set on startup; None while the app is not serving.
MONITOR: Monitor | None = None


def _monitor() -> Monitor:
    if MONITOR is None:
        raise HTTPException(status_code=503, detail="Monitor not running")
    return MONITOR


@app.on_event("startup")
def startup() -> None:
    global MONITOR
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    db.init_db()
    MONITOR = build_monitor(settings)
    logger.info(
        "[START] LVS health monitor: %d backends, %d services, threshold %d%%, window %ds%s",
        len(settings.backends),
        len(settings.service_keys()),
        settings.loss_threshold,
        settings.window_seconds,
        " (dry run)" if settings.dry_run else "",
    )
    MONITOR.scheduler.start()


@app.on_event("shutdown")
def shutdown() -> None:
    global MONITOR
    if MONITOR is not None:
        MONITOR.scheduler.stop(timeout=settings.ping_timeout_s * settings.ping_count + 1)
        MONITOR = None


@app.get("/health")
def health() -> dict:
    return {"status": "healthy"}


@app.get("/targets", response_model=list[TargetStatusOut])
def list_targets() -> list[TargetStatusOut]:
    return [TargetStatusOut.from_snapshot(s) for s in _monitor().runtime.snapshot()]


@app.get("/targets/{target}", response_model=TargetStatusOut)
def get_target(target: str) -> TargetStatusOut:
    snap = _monitor().runtime.get(target)
    if snap is None:
        raise HTTPException(status_code=404, detail=f"Unknown target '{target}'")
    return TargetStatusOut.from_snapshot(snap)


@app.get("/services", response_model=ServicesOut)
def list_services() -> ServicesOut:
    mon = _monitor()
    return ServicesOut(
        virtual_ip=settings.virtual_ip,
        configured=[k.key for k in settings.service_keys()],
        registered=mon.registry.keys(),
    )


@app.get("/events", response_model=list[EventOut])
def events(limit: int = Query(100, ge=1, le=1000)) -> list[dict]:
    return db.latest_events(limit)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
