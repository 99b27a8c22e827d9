"""Operating system facts: processes, /proc status counters, resource limits."""

import os
from pathlib import Path
from typing import Protocol

import psutil

from vsmem.models import MemoryCounters

STATUS_FIELDS = ("VmPeak", "VmSize", "VmHWM", "VmRSS")


class OsFacts(Protocol):
    """The OS queries used by the process inspector and limit reporter."""

    def list_processes(self, match: str) -> list[tuple[int, str]]: ...

    def read_memory_counters(self, pid: int) -> MemoryCounters | None: ...

    def read_virtual_memory_limit(self) -> int | None: ...


def parse_status(text: str) -> MemoryCounters | None:
    """
    Parse the memory counters out of a /proc/<pid>/status file.

    Returns None if any of VmPeak, VmSize, VmHWM or VmRSS is missing, which
    is the case for kernel threads and zombies.
    """
    values: dict[str, int] = {}
    for line in text.splitlines():
        key, sep, rest = line.partition(":")
        if sep and key in STATUS_FIELDS:
            fields = rest.split()
            if fields:
                values[key] = int(fields[0])

    if any(field not in values for field in STATUS_FIELDS):
        return None

    return MemoryCounters(
        vm_peak=values["VmPeak"],
        vm_size=values["VmSize"],
        vm_hwm=values["VmHWM"],
        vm_rss=values["VmRSS"],
    )


class PsutilOsFacts:
    """
    OS facts backed by psutil and the /proc filesystem.

    Processes that exit or deny access while being inspected are skipped.
    """

    def __init__(self, proc_root: Path = Path("/proc")) -> None:
        self._proc_root = proc_root

    def list_processes(self, match: str) -> list[tuple[int, str]]:
        """List (pid, command line) of processes whose command line contains match."""
        own_pid = os.getpid()
        processes: list[tuple[int, str]] = []

        for proc in psutil.process_iter(attrs=["pid", "cmdline"]):
            try:
                info = proc.info
                pid = info.get("pid", 0)
                cmdline = info.get("cmdline") or []
                command_line = " ".join(cmdline)
                if pid == own_pid or match not in command_line:
                    continue
                processes.append((pid, command_line))
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return processes

    def read_memory_counters(self, pid: int) -> MemoryCounters | None:
        """Read the kB memory counters of pid, or None if it is gone."""
        try:
            text = (self._proc_root / str(pid) / "status").read_text(encoding="utf-8")
        except (FileNotFoundError, ProcessLookupError, PermissionError):
            return None
        return parse_status(text)

    def read_virtual_memory_limit(self) -> int | None:
        """Get the soft RLIMIT_AS of this process in bytes, None if unlimited."""
        soft, _hard = psutil.Process().rlimit(psutil.RLIMIT_AS)
        if soft == psutil.RLIM_INFINITY:
            return None
        return soft
