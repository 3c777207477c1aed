from datetime import datetime
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field


class MemoryUsage(BaseModel):
    """Physical memory usage, sizes in gigabytes."""

    model_config = ConfigDict(frozen=True)

    total_gb: float = Field(..., ge=0)
    used_gb: float = Field(..., ge=0)
    free_gb: float = Field(..., ge=0)
    percent: float = Field(..., ge=0, le=100)


class DiskUsage(BaseModel):
    """Root filesystem usage, sizes in gigabytes."""

    model_config = ConfigDict(frozen=True)

    total_gb: float = Field(0.0, ge=0)
    used_gb: float = Field(0.0, ge=0)
    available_gb: float = Field(0.0, ge=0)
    percent: float = Field(0.0, ge=0, le=100)


class NetworkCounters(BaseModel):
    """Cumulative byte counters of the primary network interface."""

    model_config = ConfigDict(frozen=True)

    received_bytes: int = Field(0, ge=0)
    transmitted_bytes: int = Field(0, ge=0)


class CollectionStatus(BaseModel):
    """
    Per-field collection flags.

    A flag is False when the sub-query for that field failed or timed out and
    the field holds a default value instead of a real reading.
    """

    model_config = ConfigDict(frozen=True)

    cpu: bool = True
    disk: bool = True
    network: bool = True
    processes: bool = True

    @property
    def degraded_fields(self) -> List[str]:
        return [name for name, ok in self.model_dump().items() if not ok]

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_fields)


class MetricSnapshot(BaseModel):
    """One immutable reading of all monitored host metrics."""

    model_config = ConfigDict(frozen=True)

    hostname: str = Field(..., description="System hostname")
    uptime_seconds: int = Field(
        ...,
        ge=0,
        description="Number of seconds since the system was booted",
    )
    load_average: Tuple[float, float, float] = Field(
        ...,
        description="1, 5 and 15 minute load averages",
    )
    cpu_usage_percent: float = Field(
        ...,
        ge=0,
        le=100,
        description="CPU utilisation in percent",
    )
    memory: MemoryUsage
    disk: DiskUsage
    network: NetworkCounters
    process_count: int = Field(..., ge=0)
    timestamp: datetime
    status: CollectionStatus = Field(default_factory=CollectionStatus)

    @property
    def uptime(self) -> str:
        return format_uptime(self.uptime_seconds)


def format_uptime(seconds: float) -> str:
    """Render an uptime as whole days, hours and minutes, e.g. '1d 1h 0m'."""
    seconds = int(seconds)
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    return f"{days}d {hours}h {minutes}m"
