from fastapi import APIRouter

from vps_monitor import runtime
from vps_monitor.models.snapshot import MetricSnapshot

router = APIRouter()


@router.get("/", response_model=MetricSnapshot, summary="Host status")
def host_status() -> MetricSnapshot:
    """
    Return a fresh snapshot of the host metrics.

    This is the on-demand query path: it never changes the alert state of a
    running monitoring session. Sub-metrics that could not be read are
    reported with default values and a False flag under "status".
    """
    return runtime.get_runtime().get_status()
