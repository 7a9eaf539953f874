"""Counter sources: raw, cumulative CPU and memory readings for proctop."""

import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path

import psutil

from proctop.errors import MalformedSample, SourceUnavailable
from proctop.models import EntityCounterSample, MemorySample, Snapshot, SystemCounterSample

logger = logging.getLogger(__name__)

DEFAULT_TICKS_PER_SECOND = 100

# /proc/stat aggregate columns, in kernel order
CPU_FIELDS = (
    "user",
    "nice",
    "system",
    "idle",
    "iowait",
    "irq",
    "softirq",
    "steal",
    "guest",
    "guest_nice",
)
IDLE_FIELDS = ("idle", "iowait")
WORK_FIELDS = tuple(name for name in CPU_FIELDS if name not in IDLE_FIELDS)


def ticks_per_second() -> int:
    """Return the kernel clock tick rate (USER_HZ)."""
    try:
        hz = os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        return DEFAULT_TICKS_PER_SECOND
    return hz if hz > 0 else DEFAULT_TICKS_PER_SECOND


def split_cpu_ticks(values: dict[str, int]) -> SystemCounterSample:
    """Fold per-category CPU ticks into busy and idle totals."""
    work = sum(max(0, values.get(name, 0)) for name in WORK_FIELDS)
    idle = sum(max(0, values.get(name, 0)) for name in IDLE_FIELDS)
    return SystemCounterSample(work_ticks=work, idle_ticks=idle)


class CounterSource(ABC):
    """
    Read-only access to the operating system's cumulative counters.

    Every call takes a fresh reading. Implementations raise SourceUnavailable
    when the counter interface cannot be opened and MalformedSample when the
    aggregate counters do not parse. Individual processes that vanish or
    cannot be read are left out of sample_entities() instead of raising.
    """

    @abstractmethod
    def sample_system(self) -> SystemCounterSample:
        """Read the aggregate CPU counters."""

    @abstractmethod
    def sample_entities(self) -> dict[int, EntityCounterSample]:
        """Read counters for every live process, keyed by pid."""

    @abstractmethod
    def sample_memory(self) -> MemorySample:
        """Read total, free and available memory."""

    @abstractmethod
    def sample_uptime(self) -> float:
        """Read system uptime in seconds."""

    def snapshot(self) -> Snapshot:
        """Take one complete reading of all counters."""
        system = self.sample_system()
        entities = self.sample_entities()
        memory = self.sample_memory()
        uptime = self.sample_uptime()
        return Snapshot(
            system=system,
            entities=entities,
            memory=memory,
            uptime_seconds=uptime,
            captured_at=time.time(),
        )


class PsutilCounterSource(CounterSource):
    """
    Counter source backed by psutil.

    psutil reports CPU times in seconds; they are converted back to ticks so
    system and per-process deltas share one unit.
    """

    # Attributes to fetch per process
    ATTRS = ["pid", "name", "cpu_times", "memory_info", "create_time"]

    def __init__(self, hz: int | None = None) -> None:
        """
        Initialize the PsutilCounterSource.

        Args:
            hz: Clock ticks per second. Defaults to the kernel's USER_HZ.
        """
        self._hz = hz or ticks_per_second()

    def _to_ticks(self, seconds: float) -> int:
        return int(round(seconds * self._hz))

    def sample_system(self) -> SystemCounterSample:
        try:
            times = psutil.cpu_times()
        except OSError as exc:
            raise SourceUnavailable(f"cannot read CPU times: {exc}") from exc
        values = {name: self._to_ticks(getattr(times, name, 0.0)) for name in CPU_FIELDS}
        return split_cpu_ticks(values)

    def sample_entities(self) -> dict[int, EntityCounterSample]:
        try:
            boot_time = psutil.boot_time()
            procs = psutil.process_iter(attrs=self.ATTRS)
        except OSError as exc:
            raise SourceUnavailable(f"cannot enumerate processes: {exc}") from exc

        entities: dict[int, EntityCounterSample] = {}
        for proc in procs:
            try:
                info = proc.info
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

            cpu_times = info.get("cpu_times")
            if cpu_times is None:
                # Counters unreadable (access denied or exited mid-scan)
                logger.debug("dropping pid %s: no cpu times", info.get("pid"))
                continue

            mem_info = info.get("memory_info")
            create_time = info.get("create_time")
            start_ticks = self._to_ticks(create_time - boot_time) if create_time else 0

            pid = info["pid"]
            entities[pid] = EntityCounterSample(
                pid=pid,
                label=info.get("name") or "",
                cpu_ticks=self._to_ticks(cpu_times.user + cpu_times.system),
                resident_kb=mem_info.rss // 1024 if mem_info else 0,
                start_ticks=max(0, start_ticks),
            )
        return entities

    def sample_memory(self) -> MemorySample:
        try:
            mem = psutil.virtual_memory()
        except OSError as exc:
            raise SourceUnavailable(f"cannot read memory info: {exc}") from exc
        available = getattr(mem, "available", None)
        return MemorySample(
            total_kb=mem.total // 1024,
            free_kb=mem.free // 1024,
            available_kb=available // 1024 if available is not None else None,
        )

    def sample_uptime(self) -> float:
        try:
            boot_time = psutil.boot_time()
        except OSError as exc:
            raise SourceUnavailable(f"cannot read boot time: {exc}") from exc
        return max(0.0, time.time() - boot_time)


class ProcfsCounterSource(CounterSource):
    """
    Counter source that parses a Linux /proc tree directly.

    The root directory is configurable so that a synthetic tree can be used
    in place of the live one.
    """

    def __init__(self, root: str | os.PathLike[str] = "/proc") -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        """Get the proc tree root."""
        return self._root

    def _read_aggregate(self, name: str) -> str:
        try:
            return (self._root / name).read_text()
        except OSError as exc:
            raise SourceUnavailable(f"cannot read {self._root / name}: {exc}") from exc

    def sample_system(self) -> SystemCounterSample:
        text = self._read_aggregate("stat")
        for line in text.splitlines():
            parts = line.split()
            if parts and parts[0] == "cpu":
                break
        else:
            raise MalformedSample("no aggregate cpu line in stat")

        try:
            numbers = [int(value) for value in parts[1:]]
        except ValueError as exc:
            raise MalformedSample(f"non-numeric cpu counters: {line!r}") from exc
        if len(numbers) < 4:
            raise MalformedSample(f"too few cpu counters: {line!r}")

        # Older kernels omit the trailing columns
        return split_cpu_ticks(dict(zip(CPU_FIELDS, numbers)))

    def _live_pids(self) -> list[int]:
        try:
            names = os.listdir(self._root)
        except OSError as exc:
            raise SourceUnavailable(f"cannot list {self._root}: {exc}") from exc
        return sorted(int(name) for name in names if name.isdigit())

    def _read_entity(self, pid: int) -> EntityCounterSample | None:
        """Read one process, or None if it vanished or does not parse."""
        base = self._root / str(pid)
        try:
            stat = (base / "stat").read_text()
            status = (base / "status").read_text()
        except OSError:
            # Exited between enumeration and read, or not ours to read
            return None

        # The name may itself contain spaces and parentheses
        open_paren = stat.find("(")
        close_paren = stat.rfind(")")
        if open_paren < 0 or close_paren < open_paren:
            return None
        label = stat[open_paren + 1 : close_paren]
        rest = stat[close_paren + 1 :].split()

        try:
            # Fields after the name start at field 3 (state)
            utime = int(rest[11])
            stime = int(rest[12])
            start_ticks = int(rest[19]) if len(rest) > 19 else 0
        except (IndexError, ValueError):
            return None

        resident_kb = 0
        for line in status.splitlines():
            if line.startswith("VmRSS:"):
                try:
                    resident_kb = int(line.split()[1])
                except (IndexError, ValueError):
                    return None
                break

        return EntityCounterSample(
            pid=pid,
            label=label,
            cpu_ticks=max(0, utime) + max(0, stime),
            resident_kb=max(0, resident_kb),
            start_ticks=max(0, start_ticks),
        )

    def sample_entities(self) -> dict[int, EntityCounterSample]:
        entities: dict[int, EntityCounterSample] = {}
        for pid in self._live_pids():
            entity = self._read_entity(pid)
            if entity is None:
                logger.debug("dropping pid %d: unreadable or malformed", pid)
                continue
            entities[pid] = entity
        return entities

    def sample_memory(self) -> MemorySample:
        text = self._read_aggregate("meminfo")
        values: dict[str, int] = {}
        for line in text.splitlines():
            key, _, rest = line.partition(":")
            parts = rest.split()
            if parts:
                try:
                    values[key.strip()] = int(parts[0])
                except ValueError:
                    continue

        if "MemTotal" not in values:
            raise MalformedSample("meminfo has no MemTotal")
        return MemorySample(
            total_kb=values["MemTotal"],
            free_kb=values.get("MemFree", 0),
            available_kb=values.get("MemAvailable"),
        )

    def sample_uptime(self) -> float:
        text = self._read_aggregate("uptime")
        try:
            return float(text.split()[0])
        except (IndexError, ValueError) as exc:
            raise MalformedSample(f"cannot parse uptime: {text!r}") from exc


def create_source(kind: str = "psutil", proc_root: str = "/proc") -> CounterSource:
    """
    Build a counter source by name.

    Args:
        kind: "psutil" or "procfs".
        proc_root: Root of the proc tree, used by the procfs source.
    """
    if kind == "psutil":
        return PsutilCounterSource()
    if kind == "procfs":
        return ProcfsCounterSource(proc_root)
    raise ValueError(f"unknown counter source: {kind!r}")
