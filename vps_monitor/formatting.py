from typing import Any, Dict, List

from vps_monitor.models.alerts import AlertRaised, Metric
from vps_monitor.models.snapshot import MetricSnapshot

_BYTES_PER_MB = 1024 * 1024
_SEPARATOR = "━" * 40

_METRIC_LABELS = {
    Metric.CPU: "CPU",
    Metric.MEMORY: "Memory",
    Metric.DISK: "Disk",
}


def create_status_bar(percent: float, length: int = 10) -> str:
    # Round half up so 25% of a 10-cell bar fills 3 cells
    filled = int(max(0.0, min(100.0, percent)) / 100 * length + 0.5)
    return "█" * filled + "░" * (length - filled)


def level_emoji(percent: float) -> str:
    if percent > 80:
        return "🔴"
    if percent > 50:
        return "🟡"
    return "🟢"


def format_system_message(snapshot: MetricSnapshot) -> str:
    cpu = snapshot.cpu_usage_percent
    mem = snapshot.memory
    disk = snapshot.disk
    net = snapshot.network
    load = " | ".join(f"{value:.2f}" for value in snapshot.load_average)
    timestamp = snapshot.timestamp.strftime("%d/%m/%Y %H:%M:%S")

    lines = [
        f"🖥️ **{snapshot.hostname}**",
        f"📊 *System Status - {timestamp}*",
        "",
        f"⏱️ **Uptime:** {snapshot.uptime}",
        f"🔄 **Load Avg:** {load}",
        f"🧮 **Processes:** {snapshot.process_count}",
        "",
        f"{level_emoji(cpu)} **CPU Usage: {cpu:.1f}%**",
        f"`{create_status_bar(cpu)}` {cpu:.1f}%",
        "",
        f"{level_emoji(mem.percent)} **Memory: {mem.used_gb}GB / {mem.total_gb}GB**",
        f"`{create_status_bar(mem.percent)}` {mem.percent}%",
        "",
        f"{level_emoji(disk.percent)} **Disk: {disk.used_gb}GB / {disk.total_gb}GB**",
        f"`{create_status_bar(disk.percent)}` {disk.percent}%",
        "",
        "🌐 **Network:**",
        f"↗️ TX: {net.transmitted_bytes / _BYTES_PER_MB:.2f} MB",
        f"↙️ RX: {net.received_bytes / _BYTES_PER_MB:.2f} MB",
    ]
    if snapshot.status.is_degraded:
        lines += ["", f"⚠️ Unavailable: {', '.join(snapshot.status.degraded_fields)}"]
    lines += ["", _SEPARATOR]
    return "\n".join(lines)


def format_alert_line(event: AlertRaised) -> str:
    label = _METRIC_LABELS[event.metric]
    return f"🔴 **{label} Alert:** {event.value:.1f}% (>{event.threshold:g}%)"


def format_alert_message(events: List[AlertRaised], snapshot: MetricSnapshot) -> str:
    alerts = "\n".join(format_alert_line(event) for event in events)
    return f"🚨 **VPS ALERT - {snapshot.hostname}**\n\n{alerts}\n\n{format_system_message(snapshot)}"


def format_digest_message(snapshot: MetricSnapshot) -> str:
    return f"📊 **Regular Status Report**\n{format_system_message(snapshot)}"


def format_code_block(title: str, body: str) -> str:
    return f"{title}\n\n```\n{body}\n```"


def action_keyboard() -> Dict[str, Any]:
    """Inline keyboard shown under status messages."""
    rows = [
        [("🔄 Refresh", "refresh"), ("📊 Detail", "detail")],
        [("🔍 Top Processes", "top"), ("💾 Disk Info", "disk")],
        [("🌐 Network", "network"), ("⚙️ Services", "services")],
    ]
    return {
        "inline_keyboard": [
            [{"text": text, "callback_data": data} for text, data in row]
            for row in rows
        ]
    }


HELP_MESSAGE = """🤖 **VPS Monitor Bot is active!**

Available commands:
📊 /status - Real-time system status
🔄 /monitor - Start automatic monitoring
⏹️ /stop - Stop monitoring
🔍 /top - Running processes
💾 /disk - Disk details
🌐 /network - Network status
⚙️ /services - Service status
🏓 /ping - Test the bot
"""
