from typing import List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from vps_monitor import runtime
from vps_monitor.errors import SchedulerStateError
from vps_monitor.models.alerts import AlertThresholds, Metric

router = APIRouter()


class MonitorState(BaseModel):
    """Lifecycle state of the monitoring loop."""

    running: bool = Field(..., description="True while a monitoring session is active")
    breached: List[Metric] = Field(
        default_factory=list,
        description="Metrics currently above their alert threshold",
    )


def _current_state() -> MonitorState:
    controller = runtime.get_runtime().controller
    return MonitorState(
        running=controller.running,
        breached=controller.alert_state.breached_metrics(),
    )


@router.get("/state", response_model=MonitorState, summary="Monitoring state")
def monitor_state() -> MonitorState:
    return _current_state()


@router.post("/start", response_model=MonitorState, summary="Start monitoring")
def start_monitoring() -> MonitorState:
    """
    Start the monitoring loop.

    A second start while the loop is running is rejected with 409 Conflict.
    """
    try:
        runtime.get_runtime().controller.start()
    except SchedulerStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _current_state()


@router.post("/stop", response_model=MonitorState, summary="Stop monitoring")
def stop_monitoring() -> MonitorState:
    try:
        runtime.get_runtime().controller.stop()
    except SchedulerStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _current_state()


@router.get("/thresholds", response_model=AlertThresholds, summary="Alert thresholds")
def get_thresholds() -> AlertThresholds:
    return runtime.get_runtime().thresholds


@router.put("/thresholds", response_model=AlertThresholds, summary="Update alert thresholds")
def update_thresholds(update: AlertThresholds) -> AlertThresholds:
    """
    Replace the alert thresholds in place.

    The running session reads the same object, so new values apply from its
    next tick on.
    """
    thresholds = runtime.get_runtime().thresholds
    for name, value in update.model_dump().items():
        setattr(thresholds, name, value)
    return thresholds
