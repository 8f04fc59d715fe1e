"""Worker configuration and router settings schemas.

WorkerConfig is the external worker configuration consumed on every
routing decision (local queue capacity, remote machine tier and its
hourly rate). RouterSettings holds the engine's own tunables.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field

# Remote machine tier used when nothing else is configured
DEFAULT_MACHINE = "standardLinux"

# Hourly rate applied to machines missing from the rate table
DEFAULT_HOURLY_RATE = 0.18


def _default_rates() -> dict[str, float]:
    return {"standardLinux": 0.18, "largePremiumLinux": 0.36}


class LocalWorkerConfig(BaseModel):
    """Configuration of the local executor."""

    max_concurrent_tasks: int = Field(
        default=5, ge=1, description="Active task count at which the local queue is full"
    )


class CodespaceWorkerConfig(BaseModel):
    """Configuration of the remote sandbox executor."""

    machine: str = Field(default=DEFAULT_MACHINE, description="Remote machine tier")
    hourly_rates: dict[str, Annotated[float, Field(ge=0.0)]] = Field(
        default_factory=_default_rates,
        description="Compute cost per hour keyed by machine tier",
    )
    default_hourly_rate: float = Field(
        default=DEFAULT_HOURLY_RATE,
        ge=0.0,
        description="Rate used when the machine tier has no entry in hourly_rates",
    )

    @property
    def hourly_rate(self) -> float:
        """Compute cost per hour for the configured machine tier."""
        return self.hourly_rates.get(self.machine, self.default_hourly_rate)


class WorkerConfig(BaseModel):
    """External worker configuration snapshot."""

    local: LocalWorkerConfig = Field(
        default_factory=LocalWorkerConfig, description="Local executor settings"
    )
    codespace: CodespaceWorkerConfig = Field(
        default_factory=CodespaceWorkerConfig, description="Remote executor settings"
    )


class RouterSettings(BaseModel):
    """Tunables of the routing engine itself."""

    cache_lifetime: float = Field(
        default=60.0, ge=0.0, description="Seconds a cached decision stays fresh"
    )
    smoothing_factor: float = Field(
        default=0.2, gt=0.0, le=1.0, description="EMA smoothing factor for history updates"
    )
    time_value_per_minute: float = Field(
        default=0.5, ge=0.0, description="Value of one minute of developer time"
    )
    failure_reason_limit: int = Field(
        default=20, ge=0, description="Failure reasons kept per mode and task type"
    )
