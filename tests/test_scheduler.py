import threading
import time
from datetime import datetime

import pytest

from vps_monitor.errors import AlreadyRunning, DeliveryError, NotRunning
from vps_monitor.models.alerts import AlertThresholds, Metric
from vps_monitor.models.snapshot import CollectionStatus
from vps_monitor.services.scheduler import LoopController, MonitoringSession, is_digest_minute


def _clock(*minutes):
    times = [datetime(2024, 5, 1, 12, minute, 0) for minute in minutes]

    def now():
        return times.pop(0)

    return now


def _session(collector, sink, clock, thresholds=None):
    return MonitoringSession(
        collector,
        thresholds or AlertThresholds(),
        sink,
        interval_seconds=60,
        digest_every_minutes=5,
        clock=clock,
    )


def test_is_digest_minute():
    assert is_digest_minute(datetime(2024, 1, 1, 0, 0), 5)
    assert is_digest_minute(datetime(2024, 1, 1, 0, 55), 5)
    assert not is_digest_minute(datetime(2024, 1, 1, 0, 7), 5)


def test_digest_fires_at_minutes_zero_and_five(fake_collector, sink):
    session = _session(fake_collector(), sink, _clock(0, 1, 2, 3, 4, 5))

    for _ in range(6):
        session.tick()

    assert len(sink.digests) == 2
    assert sink.alerts == []


def test_alert_and_digest_are_independent(fake_collector, make_snapshot, sink):
    collector = fake_collector(make_snapshot(cpu=95.0))
    session = _session(collector, sink, _clock(5, 6))

    session.tick()
    session.tick()

    # First tick: both outputs; second tick: cpu still breached, not a digest minute
    assert len(sink.alerts) == 1
    events, snapshot = sink.alerts[0]
    assert [event.metric for event in events] == [Metric.CPU]
    assert snapshot.cpu_usage_percent == 95.0
    assert len(sink.digests) == 1


def test_alert_fires_again_after_recovery(fake_collector, make_snapshot, sink):
    collector = fake_collector(
        make_snapshot(disk=95.0),
        make_snapshot(disk=95.0),
        make_snapshot(disk=50.0),
        make_snapshot(disk=96.0),
    )
    session = _session(collector, sink, _clock(1, 2, 3, 4))

    for _ in range(4):
        session.tick()

    assert [events[0].value for events, _ in sink.alerts] == [95.0, 96.0]
    assert session.alert_state.breached_metrics() == [Metric.DISK]


def test_degraded_tick_inside_a_breach_does_not_realert(fake_collector, make_snapshot, sink):
    collector = fake_collector(
        make_snapshot(cpu=95.0),
        make_snapshot(cpu=0.0, status=CollectionStatus(cpu=False)),
        make_snapshot(cpu=96.0),
    )
    session = _session(collector, sink, _clock(1, 2, 3))

    for _ in range(3):
        session.tick()

    assert len(sink.alerts) == 1
    assert sink.alerts[0][0][0].value == 95.0
    assert session.alert_state.breached_metrics() == [Metric.CPU]


def test_tick_errors_are_contained(fake_collector, sink, make_snapshot, caplog):
    class FlakyCollector:
        def __init__(self):
            self.calls = 0

        def collect(self):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("collector exploded")
            return make_snapshot(memory=99.0)

    session = _session(FlakyCollector(), sink, _clock(1, 2))

    session.tick()
    assert "Monitoring tick failed" in caplog.text
    assert session.alert_state.breached_metrics() == []

    session.tick()
    assert len(sink.alerts) == 1


def test_delivery_error_is_logged_and_does_not_stop_the_tick(fake_collector, make_snapshot, caplog):
    class BrokenSink:
        def __init__(self):
            self.digests = 0

        def deliver_alert(self, events, snapshot):
            raise DeliveryError("network down")

        def deliver_digest(self, snapshot):
            self.digests += 1

    sink = BrokenSink()
    session = _session(fake_collector(make_snapshot(cpu=99.0)), sink, _clock(0))

    session.tick()

    assert "Could not deliver alert" in caplog.text
    assert sink.digests == 1
    assert session.alert_state.is_breached(Metric.CPU)


def _controller(collector, sink, interval=60.0):
    return LoopController(collector, AlertThresholds(), sink, interval_seconds=interval)


def test_start_twice_is_rejected_and_keeps_one_timer(fake_collector, sink):
    controller = _controller(fake_collector(), sink)
    try:
        session = controller.start()
        with pytest.raises(AlreadyRunning):
            controller.start()

        assert controller.running
        assert controller.session is session
        loops = [t for t in threading.enumerate() if t.name == "monitoring-loop"]
        assert loops == [session.thread]
    finally:
        controller.shutdown()


def test_stop_when_idle_is_rejected(fake_collector, sink):
    controller = _controller(fake_collector(), sink)
    with pytest.raises(NotRunning):
        controller.stop()
    assert not controller.running


def test_stop_cancels_timer_and_discards_state(fake_collector, make_snapshot, sink):
    controller = _controller(fake_collector(make_snapshot(cpu=99.0)), sink, interval=0.05)
    session = controller.start()

    deadline = time.monotonic() + 2
    while not sink.alerts and time.monotonic() < deadline:
        time.sleep(0.01)
    assert controller.alert_state.is_breached(Metric.CPU)

    controller.stop()
    session.thread.join(1)

    assert not controller.running
    assert session.cancelled
    assert not session.thread.is_alive()
    assert controller.alert_state.breached_metrics() == []

    # A new session starts with a clean state and raises the alert again
    controller.start()
    try:
        deadline = time.monotonic() + 2
        while len(sink.alerts) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(sink.alerts) == 2
    finally:
        controller.shutdown()



def test_stop_does_not_wait_a_full_interval_for_a_hung_tick(make_snapshot, sink):
    entered = threading.Event()
    release = threading.Event()

    class HungCollector:
        def collect(self):
            entered.set()
            release.wait(5)
            return make_snapshot(cpu=99.0)

    controller = LoopController(
        HungCollector(), AlertThresholds(), sink, interval_seconds=0.05, stop_timeout=0.2,
    )
    session = controller.start()
    try:
        assert entered.wait(2)

        started = time.monotonic()
        controller.stop()
        assert time.monotonic() - started < 1.0
        assert not controller.running
    finally:
        release.set()
        session.thread.join(2)

    # The abandoned tick finishes without delivering anything
    assert sink.alerts == []
    assert not session.thread.is_alive()

def test_shutdown_is_safe_when_idle(fake_collector, sink):
    controller = _controller(fake_collector(), sink)
    controller.shutdown()
    assert not controller.running


def test_state_read_during_a_tick_sees_previous_complete_state(fake_collector, make_snapshot, sink):
    gate = threading.Event()
    release = threading.Event()

    class SlowCollector:
        def collect(self):
            gate.set()
            release.wait(2)
            return make_snapshot(cpu=99.0)

    collector = SlowCollector()
    session = _session(collector, sink, _clock(1))
    before = session.alert_state

    ticker = threading.Thread(target=session.tick)
    ticker.start()
    gate.wait(2)

    # While the tick is in flight, state reads return the previous complete state
    observed = session.alert_state
    assert observed is before
    assert observed.breached_metrics() == []

    release.set()
    ticker.join(2)
    assert session.alert_state.breached_metrics() == [Metric.CPU]
    assert before.breached_metrics() == []
