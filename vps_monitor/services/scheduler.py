import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Protocol

from vps_monitor.errors import AlreadyRunning, DeliveryError, NotRunning
from vps_monitor.models.alerts import AlertRaised, AlertState, AlertThresholds
from vps_monitor.models.snapshot import MetricSnapshot
from vps_monitor.services.evaluator import evaluate

logger = logging.getLogger(__name__)


class DeliverySink(Protocol):
    def deliver_alert(self, events: List[AlertRaised], snapshot: MetricSnapshot) -> None:
        ...

    def deliver_digest(self, snapshot: MetricSnapshot) -> None:
        ...


class Collector(Protocol):
    def collect(self) -> MetricSnapshot:
        ...


def is_digest_minute(now: datetime, every_minutes: int) -> bool:
    return now.minute % every_minutes == 0


class MonitoringSession:
    """
    One running monitoring loop: the timer thread, its stop event and the
    alert state it owns.

    Ticks run one after another on the session thread, so they never overlap.
    The lock makes the read-evaluate-write of the alert state atomic with
    respect to explicit tick() calls from other threads.
    """

    def __init__(
        self,
        collector: Collector,
        thresholds: AlertThresholds,
        sink: DeliverySink,
        interval_seconds: float,
        digest_every_minutes: int,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.collector = collector
        self.thresholds = thresholds
        self.sink = sink
        self.interval_seconds = interval_seconds
        self.digest_every_minutes = digest_every_minutes
        self.clock = clock

        self._state = AlertState.empty()
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="monitoring-loop", daemon=True
        )

    @property
    def alert_state(self) -> AlertState:
        return self._state

    @property
    def thread(self) -> threading.Thread:
        return self._thread

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()

    def start(self) -> None:
        self._thread.start()

    def cancel(self, timeout: Optional[float] = None) -> None:
        """Stop scheduling ticks. A tick already in progress is allowed to finish."""
        self._stopped.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stopped.wait(self.interval_seconds):
            self.tick()

    def tick(self) -> None:
        """Run one unit of work. Errors are logged and never escape."""
        try:
            self._tick()
        except Exception:
            logger.exception("Monitoring tick failed")

    def _tick(self) -> None:
        snapshot = self.collector.collect()

        with self._lock:
            new_state, events = evaluate(snapshot, self.thresholds, self._state)
            self._state = new_state

        for event in events:
            logger.info("Alert %s for %s (%.1f%%)", event.kind, event.metric.value, event.value)

        if self._stopped.is_set():
            return

        raised = [event for event in events if isinstance(event, AlertRaised)]
        if raised:
            self._deliver(lambda: self.sink.deliver_alert(raised, snapshot), "alert")

        if is_digest_minute(self.clock(), self.digest_every_minutes):
            self._deliver(lambda: self.sink.deliver_digest(snapshot), "digest")

    def _deliver(self, send: Callable[[], None], what: str) -> None:
        try:
            send()
        except DeliveryError as exc:
            logger.warning("Could not deliver %s: %s", what, exc)


class LoopController:
    """
    Owns at most one MonitoringSession.

    start() and stop() are the only state transitions; both reject invalid
    requests with a SchedulerStateError and leave the current state untouched.
    """

    def __init__(
        self,
        collector: Collector,
        thresholds: AlertThresholds,
        sink: DeliverySink,
        interval_seconds: float = 60.0,
        digest_every_minutes: int = 5,
        clock: Callable[[], datetime] = datetime.now,
        stop_timeout: float = 10.0,
    ):
        self.collector = collector
        self.thresholds = thresholds
        self.sink = sink
        self.interval_seconds = interval_seconds
        self.digest_every_minutes = digest_every_minutes
        self.clock = clock
        self.stop_timeout = stop_timeout

        self._session: Optional[MonitoringSession] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Optional[MonitoringSession]:
        return self._session

    @property
    def alert_state(self) -> AlertState:
        session = self._session
        return session.alert_state if session else AlertState.empty()

    def start(self) -> MonitoringSession:
        with self._lock:
            if self._session is not None:
                raise AlreadyRunning()
            session = MonitoringSession(
                self.collector,
                self.thresholds,
                self.sink,
                self.interval_seconds,
                self.digest_every_minutes,
                clock=self.clock,
            )
            session.start()
            self._session = session

        logger.info("Monitoring started (interval %ss)", self.interval_seconds)
        return session

    def stop(self) -> None:
        with self._lock:
            if self._session is None:
                raise NotRunning()
            session, self._session = self._session, None

        # Join outside the lock so a long in-flight tick cannot block start()/status.
        # A tick still running after stop_timeout finishes on its own, without delivering.
        session.cancel(timeout=self.stop_timeout)
        logger.info("Monitoring stopped")

    def shutdown(self) -> None:
        """Cancel the active session, if any. Used on process exit."""
        try:
            self.stop()
        except NotRunning:
            pass
