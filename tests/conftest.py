import logging
from datetime import datetime

import pytest

from vps_monitor.config import get_settings
from vps_monitor.models.snapshot import (
    DiskUsage,
    MemoryUsage,
    MetricSnapshot,
    NetworkCounters,
)
from vps_monitor.runtime import get_runtime


def build_snapshot(cpu: float = 10.0, memory: float = 20.0, disk: float = 30.0, **overrides):
    values = dict(
        hostname="vps-test",
        uptime_seconds=90000,
        load_average=(0.5, 0.4, 0.3),
        cpu_usage_percent=cpu,
        memory=MemoryUsage(total_gb=8.0, used_gb=round(8.0 * memory / 100, 2), free_gb=4.0, percent=memory),
        disk=DiskUsage(total_gb=100.0, used_gb=disk, available_gb=100.0 - disk, percent=disk),
        network=NetworkCounters(received_bytes=10 * 1024 * 1024, transmitted_bytes=5 * 1024 * 1024),
        process_count=123,
        timestamp=datetime(2024, 5, 1, 12, 0, 0),
    )
    values.update(overrides)
    return MetricSnapshot(**values)


@pytest.fixture
def make_snapshot():
    return build_snapshot


class FakeCollector:
    """Returns queued snapshots; repeats the last one when the queue runs dry."""

    def __init__(self, *snapshots):
        self.snapshots = list(snapshots) or [build_snapshot()]
        self.calls = 0

    def collect(self):
        self.calls += 1
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]


class RecordingSink:
    def __init__(self):
        self.alerts = []
        self.digests = []

    def deliver_alert(self, events, snapshot):
        self.alerts.append((list(events), snapshot))

    def deliver_digest(self, snapshot):
        self.digests.append(snapshot)


@pytest.fixture
def fake_collector():
    return FakeCollector


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture(autouse=True)
def _clear_cached_singletons():
    get_settings.cache_clear()
    get_runtime.cache_clear()
    yield
    if get_runtime.cache_info().currsize:
        get_runtime().shutdown()
    get_settings.cache_clear()
    get_runtime.cache_clear()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler.get_name() == "vps_monitor.console":
            root.removeHandler(handler)
    root.setLevel(level)
