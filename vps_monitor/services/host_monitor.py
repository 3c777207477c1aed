import logging
import re
import socket
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List

import psutil

from vps_monitor.errors import CollectionError
from vps_monitor.models.snapshot import (
    CollectionStatus,
    DiskUsage,
    MemoryUsage,
    MetricSnapshot,
    NetworkCounters,
)

logger = logging.getLogger(__name__)

_BYTES_PER_GB = 1024 ** 3
_KIB_PER_GB = 1024 ** 2

# "%Cpu(s):  2.3 us,  0.8 sy,  0.0 ni, 96.7 id, ..." (procps-ng) or "96.7%id" (older top)
_CPU_IDLE_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)%?\s*id\b")

_PROC_NET_DEV = Path("/proc/net/dev")

# Extra time granted on top of the command timeout before a sub-query is abandoned
_JOIN_GRACE_SECONDS = 1.0


def run_command(args: List[str], timeout: float, field: str) -> str:
    """
    Run a system utility and return its stdout.

    Every failure mode (missing binary, non-zero exit, timeout) is reported as
    CollectionError for the given field.
    """
    try:
        result = subprocess.run(
            args,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise CollectionError(field, f"{args[0]} binary not found on host system") from exc
    except subprocess.TimeoutExpired as exc:
        raise CollectionError(field, f"{args[0]} timed out after {timeout}s") from exc
    except subprocess.CalledProcessError as exc:
        raise CollectionError(
            field, f"{args[0]} failed with return code {exc.returncode}"
        ) from exc

    return result.stdout


def _to_float(raw: str) -> float:
    return float(raw.replace(",", "."))


def parse_cpu_usage(output: str) -> float:
    """Extract CPU usage (100 - idle) from the `top -bn1` summary line."""
    for line in output.splitlines():
        if "Cpu(s)" not in line:
            continue
        match = _CPU_IDLE_PATTERN.search(line)
        if not match:
            break
        idle = _to_float(match.group(1))
        return round(min(100.0, max(0.0, 100.0 - idle)), 1)

    raise CollectionError("cpu", "could not parse Cpu(s) line from top output")


def parse_disk_usage(output: str) -> DiskUsage:
    """
    Parse `df -Pk /` output.

    Expected data line: "<fs> <1024-blocks> <used> <available> <capacity>% <mount>".
    """
    lines = [line for line in output.splitlines() if line.strip()]
    if len(lines) < 2:
        raise CollectionError("disk", "df output has no data line")

    fields = lines[-1].split()
    if len(fields) < 5:
        raise CollectionError("disk", f"unexpected df line: {lines[-1]!r}")

    try:
        total_kib, used_kib, available_kib = (int(value) for value in fields[1:4])
        percent = float(fields[4].rstrip("%"))
    except ValueError as exc:
        raise CollectionError("disk", f"unexpected df line: {lines[-1]!r}") from exc

    return DiskUsage(
        total_gb=round(total_kib / _KIB_PER_GB, 2),
        used_gb=round(used_kib / _KIB_PER_GB, 2),
        available_gb=round(available_kib / _KIB_PER_GB, 2),
        percent=round(min(100.0, percent), 1),
    )


def parse_network_counters(output: str, interface_pattern: str) -> NetworkCounters:
    """
    Read rx/tx byte counters of the first interface in /proc/net/dev whose
    name matches interface_pattern.
    """
    pattern = re.compile(interface_pattern)
    for line in output.splitlines():
        if ":" not in line:
            continue
        name, data = line.split(":", 1)
        if not pattern.search(name.strip()):
            continue
        fields = data.split()
        try:
            return NetworkCounters(
                received_bytes=int(fields[0]),
                transmitted_bytes=int(fields[8]),
            )
        except (IndexError, ValueError) as exc:
            raise CollectionError(
                "network", f"unexpected /proc/net/dev line for {name.strip()}"
            ) from exc

    raise CollectionError("network", f"no interface matching {interface_pattern!r}")


def parse_process_count(output: str) -> int:
    return sum(1 for line in output.splitlines() if line.strip())


def read_memory_usage() -> MemoryUsage:
    mem = psutil.virtual_memory()
    used = mem.total - mem.available
    return MemoryUsage(
        total_gb=round(mem.total / _BYTES_PER_GB, 2),
        used_gb=round(used / _BYTES_PER_GB, 2),
        free_gb=round(mem.available / _BYTES_PER_GB, 2),
        percent=round(used / mem.total * 100, 1) if mem.total else 0.0,
    )


class HostCollector:
    """
    Builds MetricSnapshot instances.

    The shell-backed sub-queries (cpu, disk, network, processes) run
    concurrently on a thread pool owned by the call. Each one is bounded by
    command_timeout; a failing or slow sub-query degrades its field to the
    default value and clears its flag in MetricSnapshot.status.
    """

    def __init__(
        self,
        command_timeout: float = 5.0,
        interface_pattern: str = r"eth0|ens|enp",
    ):
        self.command_timeout = command_timeout
        self.interface_pattern = interface_pattern

    # sub-queries

    def read_cpu_usage(self) -> float:
        output = run_command(["top", "-bn1"], self.command_timeout, "cpu")
        return parse_cpu_usage(output)

    def read_disk_usage(self) -> DiskUsage:
        output = run_command(["df", "-Pk", "/"], self.command_timeout, "disk")
        return parse_disk_usage(output)

    def read_network_counters(self) -> NetworkCounters:
        try:
            output = _PROC_NET_DEV.read_text(encoding="utf-8")
        except OSError as exc:
            raise CollectionError("network", f"cannot read {_PROC_NET_DEV}: {exc}") from exc
        return parse_network_counters(output, self.interface_pattern)

    def read_process_count(self) -> int:
        output = run_command(["ps", "-e", "-o", "pid="], self.command_timeout, "processes")
        return parse_process_count(output)

    def _sub_queries(self) -> Dict[str, Callable[[], object]]:
        return {
            "cpu": self.read_cpu_usage,
            "disk": self.read_disk_usage,
            "network": self.read_network_counters,
            "processes": self.read_process_count,
        }

    def collect(self) -> MetricSnapshot:
        """Take one snapshot. Never raises because of a failing sub-query."""
        defaults = {
            "cpu": 0.0,
            "disk": DiskUsage(),
            "network": NetworkCounters(),
            "processes": 0,
        }
        values: Dict[str, object] = {}
        flags: Dict[str, bool] = {}

        # One pool per call, so concurrent collections never queue behind each other
        pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="collector")
        try:
            futures = {
                field: pool.submit(query)
                for field, query in self._sub_queries().items()
            }

            deadline = time.monotonic() + self.command_timeout + _JOIN_GRACE_SECONDS
            for field, future in futures.items():
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    values[field] = future.result(timeout=remaining)
                    flags[field] = True
                except FutureTimeout:
                    logger.warning("Sub-metric %s timed out, using default", field)
                    values[field] = defaults[field]
                    flags[field] = False
                except CollectionError as exc:
                    logger.warning("Sub-metric degraded, using default: %s", exc)
                    values[field] = defaults[field]
                    flags[field] = False
                except Exception:
                    logger.exception("Unexpected failure reading sub-metric %s", field)
                    values[field] = defaults[field]
                    flags[field] = False
        finally:
            # Abandoned sub-queries are still bounded by their subprocess timeout
            pool.shutdown(wait=False)

        uptime_seconds = max(0, int(time.time() - psutil.boot_time()))
        load_1, load_5, load_15 = psutil.getloadavg()

        return MetricSnapshot(
            hostname=socket.gethostname(),
            uptime_seconds=uptime_seconds,
            load_average=(load_1, load_5, load_15),
            cpu_usage_percent=values["cpu"],
            memory=read_memory_usage(),
            disk=values["disk"],
            network=values["network"],
            process_count=values["processes"],
            timestamp=datetime.now(),
            status=CollectionStatus(**flags),
        )
