from __future__ import annotations

from pydantic import BaseModel, Field

from .runtime import TargetSnapshot


class TargetStatusOut(BaseModel):
    target: str = Field(..., description="Backend address")
    state: str = Field(..., description="UNKNOWN|UP|DOWN")
    last_sample: int | None = Field(None, ge=0, le=100, description="Latest loss sample (%)")
    average: int = Field(0, ge=0, le=100, description="Moving average loss (%)")
    window_size: int = Field(..., ge=1)
    samples: list[int] = Field(default_factory=list, description="Retained samples, oldest first")
    probes: int = 0
    transitions: int = 0
    updated_at: str | None = None

    @classmethod
    def from_snapshot(cls, snap: TargetSnapshot) -> TargetStatusOut:
        return cls(
            target=snap.target,
            state=snap.state.value,
            last_sample=snap.last_sample,
            average=snap.average,
            window_size=snap.window_size,
            samples=snap.samples,
            probes=snap.probes,
            transitions=snap.transitions,
            updated_at=snap.updated_at,
        )


class ServicesOut(BaseModel):
    virtual_ip: str
    configured: list[str] = Field(default_factory=list, description="PROTO:port keys from settings")
    registered: list[str] = Field(default_factory=list, description="Keys known to exist on the balancer")


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    target: str | None = None
    message: str
