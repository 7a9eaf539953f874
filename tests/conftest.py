"""Shared fixtures and builders for proctop tests."""

from pathlib import Path

import pytest

from proctop.models import EntityCounterSample, MemorySample, Snapshot, SystemCounterSample
from proctop.source import CounterSource


def make_snapshot(
    work: int = 200,
    idle: int = 800,
    entities: dict[int, tuple[str, int, int]] | None = None,
    total_kb: int = 8_000_000,
    free_kb: int = 2_000_000,
    available_kb: int | None = 4_000_000,
    uptime: float = 3600.0,
    captured_at: float = 0.0,
) -> Snapshot:
    """Build a Snapshot; entities map pid -> (label, cpu_ticks, resident_kb)."""
    entities = entities or {}
    return Snapshot(
        system=SystemCounterSample(work_ticks=work, idle_ticks=idle),
        entities={
            pid: EntityCounterSample(pid=pid, label=label, cpu_ticks=ticks, resident_kb=rss)
            for pid, (label, ticks, rss) in entities.items()
        },
        memory=MemorySample(total_kb=total_kb, free_kb=free_kb, available_kb=available_kb),
        uptime_seconds=uptime,
        captured_at=captured_at,
    )


class ScriptedSource(CounterSource):
    """
    Counter source that replays a fixed list of snapshots or exceptions.

    The last step repeats once the script runs out.
    """

    def __init__(self, steps: list[Snapshot | Exception]) -> None:
        self._steps = list(steps)
        self.calls = 0

    def snapshot(self) -> Snapshot:
        step = self._steps[min(self.calls, len(self._steps) - 1)]
        self.calls += 1
        if isinstance(step, Exception):
            raise step
        return step

    def sample_system(self) -> SystemCounterSample:
        return self.snapshot().system

    def sample_entities(self) -> dict[int, EntityCounterSample]:
        return self.snapshot().entities

    def sample_memory(self) -> MemorySample:
        return self.snapshot().memory

    def sample_uptime(self) -> float:
        return self.snapshot().uptime_seconds


def write_proc_entity(
    root: Path,
    pid: int,
    label: str,
    utime: int,
    stime: int,
    rss_kb: int | None = 1000,
    start_ticks: int = 500,
) -> Path:
    """Write <root>/<pid>/stat and status files the way Linux lays them out."""
    directory = root / str(pid)
    directory.mkdir()
    fields = [
        "S", "1", "1", "1", "0", "-1", "4194560", "100", "0", "0", "0",
        str(utime), str(stime), "0", "0", "20", "0", "1", "0", str(start_ticks),
        "1000000", "250",
    ]
    (directory / "stat").write_text(f"{pid} ({label}) " + " ".join(fields) + "\n")
    status = f"Name:\t{label}\nState:\tS (sleeping)\n"
    if rss_kb is not None:
        status += f"VmRSS:\t{rss_kb:>8} kB\n"
    (directory / "status").write_text(status)
    return directory


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    """A minimal synthetic /proc tree with aggregate files and no processes."""
    root = tmp_path / "proc"
    root.mkdir()
    (root / "stat").write_text(
        "cpu  100 10 50 800 20 5 5 0 0 0\n"
        "cpu0 50 5 25 400 10 2 3 0 0 0\n"
        "intr 12345\n"
    )
    (root / "meminfo").write_text(
        "MemTotal:        8000000 kB\n"
        "MemFree:         1000000 kB\n"
        "MemAvailable:    5000000 kB\n"
        "Buffers:          200000 kB\n"
    )
    (root / "uptime").write_text("12345.67 45678.90\n")
    (root / "self").mkdir()
    return root
