import logging
from functools import lru_cache
from typing import List, Optional

from vps_monitor.config import Settings, get_settings
from vps_monitor.models.alerts import AlertRaised, AlertThresholds
from vps_monitor.models.snapshot import MetricSnapshot
from vps_monitor.services.host_monitor import HostCollector
from vps_monitor.services.scheduler import DeliverySink, LoopController
from vps_monitor.services.telegram_client import TelegramClient, TelegramSink

logger = logging.getLogger(__name__)


class LogSink:
    """Delivery sink used when no chat transport is configured."""

    def deliver_alert(self, events: List[AlertRaised], snapshot: MetricSnapshot) -> None:
        for event in events:
            logger.warning(
                "ALERT %s: %s at %.1f%% (threshold %.1f%%)",
                snapshot.hostname,
                event.metric.value,
                event.value,
                event.threshold,
            )

    def deliver_digest(self, snapshot: MetricSnapshot) -> None:
        logger.info(
            "Digest %s: cpu=%.1f%% memory=%.1f%% disk=%.1f%%",
            snapshot.hostname,
            snapshot.cpu_usage_percent,
            snapshot.memory.percent,
            snapshot.disk.percent,
        )


class Runtime:
    """
    Composition root: wires one collector, one threshold object and one loop
    controller together. Each process owns a single Runtime.
    """

    def __init__(self, settings: Settings, telegram: Optional[TelegramClient] = None):
        self.settings = settings
        self.telegram = telegram
        self.collector = HostCollector(
            command_timeout=settings.command_timeout_seconds,
            interface_pattern=settings.network_interface_pattern,
        )
        self.thresholds = AlertThresholds(
            cpu=settings.alert_cpu,
            memory=settings.alert_memory,
            disk=settings.alert_disk,
            dead_band=settings.alert_dead_band,
        )

        sink: DeliverySink
        if telegram is not None and settings.admin_chat_id:
            sink = TelegramSink(telegram, settings.admin_chat_id)
        else:
            sink = LogSink()

        self.controller = LoopController(
            self.collector,
            self.thresholds,
            sink,
            interval_seconds=settings.monitor_interval_seconds,
            digest_every_minutes=settings.digest_every_minutes,
            stop_timeout=settings.command_timeout_seconds + 1.0,
        )

    @classmethod
    def with_telegram(cls, settings: Settings) -> "Runtime":
        """Build a runtime that talks to Telegram. Requires bot credentials."""
        settings.require_bot_credentials()
        client = TelegramClient(settings.bot_token, base_url=settings.telegram_api_url)
        return cls(settings, telegram=client)

    def get_status(self) -> MetricSnapshot:
        """On-demand snapshot; never touches the alert state."""
        return self.collector.collect()

    def shutdown(self) -> None:
        self.controller.shutdown()
        if self.telegram is not None:
            self.telegram.close()


@lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    return Runtime(get_settings())
