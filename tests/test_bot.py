import pytest

from vps_monitor.bot import MonitorBot
from vps_monitor.config import Settings
from vps_monitor.errors import CollectionError, DeliveryError
from vps_monitor.runtime import Runtime
from vps_monitor.services import system_info
from vps_monitor.services.system_info import NetworkInfo


class FakeTelegram:
    def __init__(self, updates=None):
        self.updates = list(updates or [])
        self.sent = []
        self.edited = []
        self.answered = []
        self._next_id = 100

    def get_updates(self, offset=None, timeout=30):
        batch, self.updates = self.updates, []
        return batch

    def send_message(self, chat_id, text, parse_mode="Markdown", reply_markup=None):
        self._next_id += 1
        self.sent.append({"chat_id": chat_id, "text": text, "reply_markup": reply_markup, "id": self._next_id})
        return self._next_id

    def edit_message_text(self, chat_id, message_id, text, parse_mode="Markdown", reply_markup=None):
        self.edited.append({"chat_id": chat_id, "message_id": message_id, "text": text, "reply_markup": reply_markup})

    def answer_callback_query(self, callback_query_id, text=None):
        self.answered.append((callback_query_id, text))

    def close(self):
        pass


def _message(text, chat_id=42, update_id=1):
    return {"update_id": update_id, "message": {"chat": {"id": chat_id}, "text": text}}


def _callback(data, chat_id=42, message_id=7, update_id=1):
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cb-{update_id}",
            "data": data,
            "message": {"chat": {"id": chat_id}, "message_id": message_id},
        },
    }


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def bot(telegram, fake_collector, make_snapshot):
    settings = Settings(bot_token="t", admin_chat_id="42", monitor_interval_seconds=3600)
    rt = Runtime(settings)
    rt.collector = fake_collector(make_snapshot(cpu=12.0))
    rt.controller.collector = rt.collector
    yield MonitorBot(rt, telegram)
    rt.controller.shutdown()


def test_start_command_sends_help(bot, telegram):
    bot.handle_update(_message("/start"))
    assert "/monitor" in telegram.sent[0]["text"]


def test_status_command_edits_loading_message(bot, telegram):
    bot.handle_update(_message("/status@vps_bot"))

    loading = telegram.sent[0]
    assert loading["text"].startswith("⏳")
    edit = telegram.edited[0]
    assert edit["message_id"] == loading["id"]
    assert "CPU Usage: 12.0%" in edit["text"]
    assert edit["reply_markup"]["inline_keyboard"]


def test_status_failure_is_reported_in_place(bot, telegram):
    def broken():
        raise RuntimeError("psutil unavailable")

    bot.runtime.get_status = broken
    bot.handle_update(_message("/status"))

    assert telegram.edited[0]["text"] == "❌ Error: psutil unavailable"


def test_monitor_and_stop_commands(bot, telegram):
    bot.handle_update(_message("/monitor"))
    assert bot.runtime.controller.running
    assert "Monitoring started" in telegram.sent[-1]["text"]

    bot.handle_update(_message("/monitor"))
    assert "already running" in telegram.sent[-1]["text"]

    bot.handle_update(_message("/stop"))
    assert not bot.runtime.controller.running
    assert "Monitoring stopped" in telegram.sent[-1]["text"]

    bot.handle_update(_message("/stop"))
    assert "not running" in telegram.sent[-1]["text"]


def test_ping_reports_response_time(bot, telegram):
    bot.handle_update(_message("/ping"))
    assert telegram.sent[0]["text"] == "🏓 Pong!"
    assert telegram.sent[1]["text"].startswith("⚡ Response time: ")
    assert telegram.sent[1]["text"].endswith("ms")


def test_commands_from_other_chats_are_ignored(bot, telegram):
    bot.handle_update(_message("/monitor", chat_id=666))
    assert telegram.sent == []
    assert not bot.runtime.controller.running


def test_plain_text_and_unknown_commands_are_ignored(bot, telegram):
    bot.handle_update(_message("hello"))
    bot.handle_update(_message("/reboot"))
    assert telegram.sent == []


def test_refresh_callback_edits_the_clicked_message(bot, telegram):
    bot.handle_update(_callback("refresh", message_id=55))

    assert telegram.answered == [("cb-1", "🔄 Refreshing...")]
    assert telegram.edited[0]["message_id"] == 55
    assert "vps-test" in telegram.edited[0]["text"]


def test_detail_callback_shows_thresholds(bot, telegram):
    bot.handle_update(_callback("detail"))
    text = telegram.sent[0]["text"]
    assert "Monitoring: stopped" in text
    assert "CPU 80% | Memory 85% | Disk 90%" in text


def test_info_commands_render_query_output(bot, telegram, monkeypatch):
    monkeypatch.setattr(system_info, "get_top_processes", lambda: "USER PID %CPU\nroot 1 0.0")
    monkeypatch.setattr(system_info, "get_disk_info", lambda: "Filesystem Size\n/dev/vda1 50G")
    monkeypatch.setattr(
        system_info,
        "get_network_info",
        lambda: NetworkInfo(listening_sockets=4, interfaces=["inet 10.0.0.2/24 scope global eth0"]),
    )

    bot.handle_update(_message("/top"))
    bot.handle_update(_callback("disk", update_id=2))
    bot.handle_update(_message("/network", update_id=3))

    assert "Top Processes" in telegram.sent[0]["text"]
    assert "root 1 0.0" in telegram.sent[0]["text"]
    assert "/dev/vda1 50G" in telegram.sent[1]["text"]
    assert "**Active Connections:** 4" in telegram.sent[2]["text"]
    assert "scope global eth0" in telegram.sent[2]["text"]


def test_info_command_failure_is_reported(bot, telegram, monkeypatch):
    def failing():
        raise CollectionError("services", "systemctl binary not found on host system")

    monkeypatch.setattr(system_info, "get_running_services", failing)
    bot.handle_update(_message("/services"))

    assert telegram.sent[0]["text"].startswith("❌ Error: services:")


def test_delivery_errors_do_not_escape(bot, telegram, caplog):
    def failing_send(*args, **kwargs):
        raise DeliveryError("sendMessage failed")

    telegram.send_message = failing_send
    bot.handle_update(_message("/start"))

    assert "Reply could not be delivered" in caplog.text


def test_poll_once_advances_offset(bot, telegram):
    telegram.updates = [_message("/start", update_id=10), _message("/ping", update_id=11)]

    assert bot.poll_once() == 2
    assert bot._offset == 12
    assert len(telegram.sent) == 3
