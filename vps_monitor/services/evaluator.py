from typing import Dict, List, Tuple

from vps_monitor.models.alerts import (
    AlertCleared,
    AlertEvent,
    AlertRaised,
    AlertState,
    AlertThresholds,
    Metric,
)
from vps_monitor.models.snapshot import MetricSnapshot


def metric_values(snapshot: MetricSnapshot) -> Dict[Metric, float]:
    return {
        Metric.CPU: snapshot.cpu_usage_percent,
        Metric.MEMORY: snapshot.memory.percent,
        Metric.DISK: snapshot.disk.percent,
    }


def metric_collected(snapshot: MetricSnapshot) -> Dict[Metric, bool]:
    # Memory comes from psutil and has no degraded state
    return {
        Metric.CPU: snapshot.status.cpu,
        Metric.MEMORY: True,
        Metric.DISK: snapshot.status.disk,
    }


def evaluate(
    snapshot: MetricSnapshot,
    thresholds: AlertThresholds,
    previous_state: AlertState,
) -> Tuple[AlertState, List[AlertEvent]]:
    """
    Compare a snapshot with the thresholds and return the new alert state
    together with the edge events since previous_state.

    A metric enters breach when its value is strictly greater than the
    threshold. A breached metric leaves breach once its value is at or below
    threshold - dead_band. Nothing fires while a metric stays on one side.

    A metric whose reading was degraded in this snapshot keeps its previous
    state and produces no event.
    """
    breached: Dict[Metric, bool] = {}
    events: List[AlertEvent] = []
    collected = metric_collected(snapshot)

    for metric, value in metric_values(snapshot).items():
        threshold = thresholds.for_metric(metric)
        was_breached = previous_state.is_breached(metric)

        if not collected[metric]:
            breached[metric] = was_breached
            continue

        if was_breached:
            now_breached = value > threshold - thresholds.dead_band
        else:
            now_breached = value > threshold

        if now_breached and not was_breached:
            events.append(AlertRaised(metric=metric, value=value, threshold=threshold))
        elif was_breached and not now_breached:
            events.append(AlertCleared(metric=metric, value=value))

        breached[metric] = now_breached

    return AlertState(breached=breached), events
