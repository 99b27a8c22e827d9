"""Data models for vsmem."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

KB_PER_MB = 1024


@dataclass(slots=True, frozen=True)
class Config:
    """Immutable run parameters parsed from the command line."""

    max_old_space_size: int
    apply_patch: bool = False
    nodeapp: str = "node"
    vscode_dir: Path | None = None
    quiet: bool = False
    debug: bool = False
    help: bool = False


@dataclass(slots=True, frozen=True)
class Installation:
    """A resolved remote server installation."""

    directory: Path
    script: Path

    @property
    def identifier(self) -> str:
        """Base name of the installation directory, used to match processes."""
        return self.directory.name


@dataclass(slots=True, frozen=True)
class MemoryCounters:
    """Raw memory counters of one process, in kilobytes."""

    vm_peak: int
    vm_size: int
    vm_hwm: int
    vm_rss: int


@dataclass(slots=True, frozen=True)
class ProcessSample:
    """Memory usage of one matching process."""

    pid: int
    vm_peak: int  # kB
    vm_size: int  # kB
    vm_hwm: int  # kB
    vm_rss: int  # kB

    @property
    def vm_peak_mb(self) -> int:
        return self.vm_peak // KB_PER_MB

    @property
    def vm_size_mb(self) -> int:
        return self.vm_size // KB_PER_MB

    @property
    def vm_hwm_mb(self) -> int:
        return self.vm_hwm // KB_PER_MB

    @property
    def vm_rss_mb(self) -> int:
        return self.vm_rss // KB_PER_MB


@dataclass(slots=True, frozen=True)
class PatchState:
    """Whether the script's last line carries the max-old-space-size flag."""

    present: bool
    value: int | None = None


class PatchOutcome(Enum):
    """Result of applying the max-old-space-size flag."""

    ALREADY_SET = "already_set"
    INSERTED = "inserted"
    CHANGED = "changed"
