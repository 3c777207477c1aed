class VpsMonitorError(Exception):
    """Base class for all errors raised by vps_monitor."""


class StartupConfigError(VpsMonitorError):
    """Required configuration is missing; the process must not start."""


class CollectionError(VpsMonitorError):
    """A single sub-metric could not be read."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class SchedulerStateError(VpsMonitorError):
    """The requested lifecycle transition is not valid in the current state."""


class AlreadyRunning(SchedulerStateError):
    def __init__(self):
        super().__init__("Monitoring is already running. Use /stop to end it.")


class NotRunning(SchedulerStateError):
    def __init__(self):
        super().__init__("Monitoring is not running.")


class DeliveryError(VpsMonitorError):
    """A message could not be delivered through the chat transport."""
