"""Data models for proctop."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(slots=True, frozen=True)
class SystemCounterSample:
    """Aggregate CPU counters taken at one instant, in ticks."""

    work_ticks: int  # user + nice + system + irq + softirq + steal + guest + guest_nice
    idle_ticks: int  # idle + iowait

    @property
    def total_ticks(self) -> int:
        """Busy plus idle ticks."""
        return self.work_ticks + self.idle_ticks


@dataclass(slots=True, frozen=True)
class EntityCounterSample:
    """Cumulative counters for a single process."""

    pid: int
    label: str
    cpu_ticks: int  # utime + stime
    resident_kb: int
    start_ticks: int = 0  # Ticks after boot; 0 when unknown


@dataclass(slots=True, frozen=True)
class MemorySample:
    """System memory figures in kilobytes."""

    total_kb: int
    free_kb: int
    available_kb: int | None = None


@dataclass(slots=True, frozen=True)
class Snapshot:
    """One complete, timestamped reading of system and per-process counters."""

    system: SystemCounterSample
    entities: dict[int, EntityCounterSample]
    memory: MemorySample
    uptime_seconds: float
    captured_at: float


@dataclass(slots=True, frozen=True)
class DerivedMetricRecord:
    """Per-process metrics derived from two snapshots."""

    pid: int
    label: str
    cpu_percent: float  # Share of the system-wide tick delta, 0.0 - 100.0
    resident_kb: int


@dataclass(slots=True, frozen=True)
class SystemMetrics:
    """System-wide metrics derived from two snapshots."""

    cpu_percent: float
    memory_used_kb: int
    memory_total_kb: int
    memory_percent: float
    uptime_seconds: float
    entity_count: int


class CycleStatus(Enum):
    """Outcome of one sampling cycle."""

    OK = "ok"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class CycleReport:
    """What the monitor hands to the presentation layer after each cycle."""

    status: CycleStatus
    system: SystemMetrics | None = None
    records: tuple[DerivedMetricRecord, ...] = field(default_factory=tuple)
    message: str = ""
