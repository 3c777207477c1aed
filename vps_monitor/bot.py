import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from vps_monitor.errors import CollectionError, DeliveryError, SchedulerStateError
from vps_monitor.formatting import (
    HELP_MESSAGE,
    action_keyboard,
    format_code_block,
    format_system_message,
)
from vps_monitor.runtime import Runtime
from vps_monitor.services import system_info
from vps_monitor.services.telegram_client import TelegramClient

logger = logging.getLogger(__name__)

Handler = Callable[[str], None]


class MonitorBot:
    """
    Long-polling command dispatcher.

    Commands arrive as `/name` messages or as inline-keyboard callbacks and
    are routed to the runtime (status, monitoring lifecycle) or to the
    informational system queries.
    """

    def __init__(self, runtime: Runtime, client: TelegramClient):
        self.runtime = runtime
        self.client = client
        self.admin_chat_id = str(runtime.settings.admin_chat_id)
        self.admin_only = runtime.settings.admin_only
        self._offset: Optional[int] = None

        self._commands: Dict[str, Handler] = {
            "start": self.cmd_start,
            "help": self.cmd_start,
            "status": self.cmd_status,
            "monitor": self.cmd_monitor,
            "stop": self.cmd_stop,
            "ping": self.cmd_ping,
            "top": self.show_top,
            "disk": self.show_disk,
            "network": self.show_network,
            "services": self.show_services,
        }
        self._callbacks: Dict[str, str] = {
            "refresh": "🔄 Refreshing...",
            "detail": "📊 Getting details...",
            "top": "📊 Getting top processes...",
            "disk": "💾 Getting disk info...",
            "network": "🌐 Getting network info...",
            "services": "⚙️ Checking services...",
        }

    # polling

    def poll_once(self, timeout: int = 30) -> int:
        """Fetch one batch of updates and dispatch them. Returns the batch size."""
        updates = self.client.get_updates(offset=self._offset, timeout=timeout)
        for update in updates:
            self._offset = int(update["update_id"]) + 1
            self.handle_update(update)
        return len(updates)

    def run(self, stop_event: threading.Event, timeout: int = 30) -> None:
        logger.info("Starting VPS Monitor Bot...")
        while not stop_event.is_set():
            try:
                self.poll_once(timeout=timeout)
            except DeliveryError as exc:
                logger.warning("Polling failed: %s", exc)
                stop_event.wait(5)

    # dispatch

    def handle_update(self, update: Dict[str, Any]) -> None:
        try:
            if "callback_query" in update:
                self._handle_callback(update["callback_query"])
            elif "message" in update:
                self._handle_message(update["message"])
        except DeliveryError as exc:
            logger.warning("Reply could not be delivered: %s", exc)
        except Exception:
            logger.exception("Bot error while handling update %s", update.get("update_id"))

    def _is_allowed(self, chat_id: str) -> bool:
        if not self.admin_only or chat_id == self.admin_chat_id:
            return True
        logger.warning("Ignoring command from unauthorised chat %s", chat_id)
        return False

    def _handle_message(self, message: Dict[str, Any]) -> None:
        text = (message.get("text") or "").strip()
        if not text.startswith("/"):
            return
        chat_id = str(message["chat"]["id"])
        if not self._is_allowed(chat_id):
            return

        # "/status@my_bot extra" -> "status"
        command = text[1:].split()[0].split("@")[0].lower()
        handler = self._commands.get(command)
        if handler is None:
            logger.debug("Unknown command %r", command)
            return
        handler(chat_id)

    def _handle_callback(self, query: Dict[str, Any]) -> None:
        data = query.get("data", "")
        message = query.get("message") or {}
        chat_id = str(message.get("chat", {}).get("id", ""))
        if not chat_id or not self._is_allowed(chat_id):
            return

        notice = self._callbacks.get(data)
        if notice is None:
            return
        self.client.answer_callback_query(query["id"], notice)

        if data == "refresh":
            self.refresh_status(chat_id, int(message["message_id"]))
        elif data == "detail":
            self.show_detail(chat_id)
        else:
            self._commands[data](chat_id)

    # commands

    def cmd_start(self, chat_id: str) -> None:
        self.client.send_message(chat_id, HELP_MESSAGE)

    def cmd_status(self, chat_id: str) -> None:
        message_id = self.client.send_message(chat_id, "⏳ Fetching system data...", parse_mode=None)
        self._edit_with_status(chat_id, message_id)

    def refresh_status(self, chat_id: str, message_id: int) -> None:
        self._edit_with_status(chat_id, message_id)

    def _edit_with_status(self, chat_id: str, message_id: int) -> None:
        try:
            snapshot = self.runtime.get_status()
        except Exception as exc:
            logger.exception("Status query failed")
            self.client.edit_message_text(chat_id, message_id, f"❌ Error: {exc}", parse_mode=None)
            return
        self.client.edit_message_text(
            chat_id,
            message_id,
            format_system_message(snapshot),
            reply_markup=action_keyboard(),
        )

    def cmd_monitor(self, chat_id: str) -> None:
        try:
            self.runtime.controller.start()
        except SchedulerStateError as exc:
            self.client.send_message(chat_id, f"⚠️ {exc}", parse_mode=None)
            return
        minutes = self.runtime.settings.digest_every_minutes
        self.client.send_message(
            chat_id,
            "🔄 **Monitoring started!**\n\n"
            f"The bot will send a report every {minutes} minutes and alert you on problems.",
        )

    def cmd_stop(self, chat_id: str) -> None:
        try:
            self.runtime.controller.stop()
        except SchedulerStateError as exc:
            self.client.send_message(chat_id, f"⚠️ {exc}", parse_mode=None)
            return
        self.client.send_message(chat_id, "⏹️ **Monitoring stopped.**")

    def cmd_ping(self, chat_id: str) -> None:
        started = time.monotonic()
        self.client.send_message(chat_id, "🏓 Pong!", parse_mode=None)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        self.client.send_message(chat_id, f"⚡ Response time: {elapsed_ms}ms", parse_mode=None)

    # informational queries

    def _reply_info(self, chat_id: str, title: str, query: Callable[[], str]) -> None:
        try:
            body = query()
        except CollectionError as exc:
            self.client.send_message(chat_id, f"❌ Error: {exc}", parse_mode=None)
            return
        self.client.send_message(chat_id, format_code_block(title, body))

    def show_top(self, chat_id: str) -> None:
        self._reply_info(chat_id, "🔍 **Top Processes (CPU Usage)**", system_info.get_top_processes)

    def show_disk(self, chat_id: str) -> None:
        self._reply_info(chat_id, "💾 **Disk Information**", system_info.get_disk_info)

    def show_services(self, chat_id: str) -> None:
        self._reply_info(chat_id, "⚙️ **Active Services**", system_info.get_running_services)

    def show_network(self, chat_id: str) -> None:
        try:
            info = system_info.get_network_info()
        except CollectionError as exc:
            self.client.send_message(chat_id, f"❌ Error: {exc}", parse_mode=None)
            return
        interfaces = "\n".join(info.interfaces) or "(none)"
        self.client.send_message(
            chat_id,
            format_code_block(
                f"🌐 **Network Information**\n\n**Active Connections:** {info.listening_sockets}"
                "\n\n**Interfaces:**",
                interfaces,
            ),
        )

    def show_detail(self, chat_id: str) -> None:
        controller = self.runtime.controller
        thresholds = self.runtime.thresholds
        breached = [metric.value for metric in controller.alert_state.breached_metrics()]
        lines = [
            "📊 **Monitoring Detail**",
            "",
            f"Monitoring: {'running' if controller.running else 'stopped'}",
            f"Thresholds: CPU {thresholds.cpu:g}% | Memory {thresholds.memory:g}% | Disk {thresholds.disk:g}%",
            f"In breach: {', '.join(breached) if breached else 'none'}",
        ]
        self.client.send_message(chat_id, "\n".join(lines))
