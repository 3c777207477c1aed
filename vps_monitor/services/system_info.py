from typing import List

from pydantic import BaseModel, Field

from vps_monitor.config import get_settings
from vps_monitor.errors import CollectionError
from vps_monitor.services.host_monitor import run_command

# Keep chat replies well below the Telegram message size limit
_MAX_LINES = 40


class NetworkInfo(BaseModel):
    """Global interface addresses plus the number of listening sockets."""

    listening_sockets: int = Field(..., ge=0)
    interfaces: List[str] = Field(default_factory=list)


def _truncate(output: str, max_lines: int = _MAX_LINES) -> str:
    lines = output.rstrip("\n").splitlines()
    if len(lines) > max_lines:
        lines = lines[:max_lines] + [f"... ({len(lines) - max_lines} more lines)"]
    return "\n".join(lines)


def _timeout() -> float:
    return get_settings().command_timeout_seconds


def get_top_processes(limit: int = 10) -> str:
    """Header plus the `limit` processes with the highest CPU usage."""
    output = run_command(["ps", "aux", "--sort=-%cpu"], _timeout(), "top")
    return _truncate(output, max_lines=limit + 1)


def get_disk_info() -> str:
    return _truncate(run_command(["df", "-h"], _timeout(), "disk"))


def get_network_info() -> NetworkInfo:
    addresses = run_command(["ip", "addr", "show"], _timeout(), "network")
    sockets = run_command(["ss", "-tuln"], _timeout(), "network")

    interfaces = [
        line.strip()
        for line in addresses.splitlines()
        if line.strip().startswith("inet") and "scope global" in line
    ]
    # First line of `ss` output is the column header
    socket_lines = [line for line in sockets.splitlines() if line.strip()]
    return NetworkInfo(
        listening_sockets=max(0, len(socket_lines) - 1),
        interfaces=interfaces,
    )


def get_running_services(limit: int = 20) -> str:
    output = run_command(
        ["systemctl", "list-units", "--type=service", "--state=running", "--no-pager"],
        _timeout(),
        "services",
    )
    if not output.strip():
        raise CollectionError("services", "systemctl returned no units")
    return _truncate(output, max_lines=limit)
