"""Data models for hostinsight."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hostinsight.errors import InsightError

_UNITS = "KMGTPE"


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string, e.g. ``1.5 GB``."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in _UNITS:
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}B"


@dataclass(slots=True, frozen=True)
class CpuMetrics:
    """Overall CPU load as a percentage (0-100)."""

    load: float


@dataclass(slots=True, frozen=True)
class MemoryMetrics:
    """Physical memory usage."""

    used_bytes: int
    total_bytes: int


@dataclass(slots=True, frozen=True)
class DiskMetrics:
    """Usage of the monitored drive. ``total_bytes == 0`` means not found."""

    drive_label: str
    used_bytes: int
    total_bytes: int


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable row of the top-process table."""

    pid: int
    name: str
    cpu_percent: float  # cumulative, 0.0 - 100.0 * core_count
    memory_label: str  # already formatted, e.g. "12.3 MB"


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """All metrics collected during one poll tick."""

    cpu: CpuMetrics
    memory: MemoryMetrics
    disk: DiskMetrics
    processes: tuple[ProcessRecord, ...]
    process_count: int


@dataclass(slots=True, frozen=True)
class InsightResult:
    """Outcome of one explain request: either text or a typed failure."""

    text: str | None = None
    error: InsightError | None = None

    def __post_init__(self) -> None:
        if (self.text is None) == (self.error is None):
            raise ValueError("InsightResult needs exactly one of text or error")

    @property
    def ok(self) -> bool:
        return self.error is None
