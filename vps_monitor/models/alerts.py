from enum import Enum
from typing import Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class Metric(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"


class AlertThresholds(BaseModel):
    """Alert thresholds in percent. Mutable; changed via the thresholds API."""

    model_config = ConfigDict(validate_assignment=True)

    cpu: float = Field(80.0, ge=0, le=100)
    memory: float = Field(85.0, ge=0, le=100)
    disk: float = Field(90.0, ge=0, le=100)
    dead_band: float = Field(
        0.0,
        ge=0,
        le=100,
        description="A breached metric clears only at or below threshold - dead_band",
    )

    def for_metric(self, metric: Metric) -> float:
        return getattr(self, metric.value)


class AlertState(BaseModel):
    """Which metrics are currently in breach. Immutable; replaced on every tick."""

    model_config = ConfigDict(frozen=True)

    breached: Dict[Metric, bool] = Field(
        default_factory=lambda: {metric: False for metric in Metric}
    )

    @classmethod
    def empty(cls) -> "AlertState":
        return cls()

    def is_breached(self, metric: Metric) -> bool:
        return self.breached.get(metric, False)

    def breached_metrics(self) -> List[Metric]:
        return [metric for metric in Metric if self.is_breached(metric)]


class AlertRaised(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["raised"] = "raised"
    metric: Metric
    value: float
    threshold: float


class AlertCleared(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["cleared"] = "cleared"
    metric: Metric
    value: float


AlertEvent = Union[AlertRaised, AlertCleared]
