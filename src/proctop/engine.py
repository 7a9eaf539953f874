"""Delta engine: turns two successive snapshots into utilization percentages."""

from proctop.models import (
    DerivedMetricRecord,
    EntityCounterSample,
    MemorySample,
    Snapshot,
    SystemCounterSample,
    SystemMetrics,
)


def clamped_delta(previous: int, current: int) -> int:
    """Difference between two cumulative readings, never negative."""
    return max(0, current - previous)


def system_cpu_percent(
    previous: SystemCounterSample, current: SystemCounterSample
) -> tuple[float, int]:
    """
    Compute system-wide CPU utilization between two samples.

    Returns:
        (cpu_percent, total_delta). cpu_percent is 0.0 when the total tick
        count did not advance.
    """
    total_delta = clamped_delta(previous.total_ticks, current.total_ticks)
    if total_delta <= 0:
        return 0.0, 0
    idle_delta = min(clamped_delta(previous.idle_ticks, current.idle_ticks), total_delta)
    return (total_delta - idle_delta) * 100.0 / total_delta, total_delta


def entity_cpu_percent(previous_ticks: int, current_ticks: int, total_delta: int) -> float:
    """
    Compute one process's share of the system tick delta.

    The denominator is the aggregate tick delta over all cores, so a process
    saturating one core of four reports 25.0.
    """
    if total_delta <= 0:
        return 0.0
    delta = clamped_delta(previous_ticks, current_ticks)
    return min(100.0, delta * 100.0 / total_delta)


def memory_usage(memory: MemorySample) -> tuple[int, float]:
    """
    Compute used memory and its percentage of total.

    Uses the kernel's available estimate when present; otherwise falls back
    to total minus free, which overstates usage on cache-heavy systems.

    Returns:
        (used_kb, used_percent)
    """
    if memory.total_kb <= 0:
        return 0, 0.0
    headroom = memory.available_kb if memory.available_kb is not None else memory.free_kb
    used = max(0, memory.total_kb - headroom)
    return used, used * 100.0 / memory.total_kb


def _baseline_ticks(previous: EntityCounterSample | None, current: EntityCounterSample) -> int:
    """Ticks to charge current against; 0 for new processes and reused pids."""
    if previous is None:
        return 0
    if previous.start_ticks and current.start_ticks and previous.start_ticks != current.start_ticks:
        return 0
    return previous.cpu_ticks


def compute(
    previous: Snapshot | None, current: Snapshot
) -> tuple[SystemMetrics, list[DerivedMetricRecord]]:
    """
    Derive system metrics and per-process records from two snapshots.

    With no previous snapshot every CPU percentage is 0.0. Memory and uptime
    are gauges and are reported from the current snapshot regardless.

    Args:
        previous: The snapshot returned by the last SnapshotStore.commit(), or None.
        current: The snapshot just taken.

    Returns:
        (system_metrics, records), records in pid order.
    """
    if previous is None:
        cpu_percent, total_delta = 0.0, 0
    else:
        cpu_percent, total_delta = system_cpu_percent(previous.system, current.system)

    records: list[DerivedMetricRecord] = []
    for pid in sorted(current.entities):
        entity = current.entities[pid]
        prior = previous.entities.get(pid) if previous is not None else None
        records.append(
            DerivedMetricRecord(
                pid=pid,
                label=entity.label,
                cpu_percent=entity_cpu_percent(
                    _baseline_ticks(prior, entity), entity.cpu_ticks, total_delta
                ),
                resident_kb=entity.resident_kb,
            )
        )

    used_kb, memory_percent = memory_usage(current.memory)
    system = SystemMetrics(
        cpu_percent=cpu_percent,
        memory_used_kb=used_kb,
        memory_total_kb=max(0, current.memory.total_kb),
        memory_percent=memory_percent,
        uptime_seconds=current.uptime_seconds,
        entity_count=len(records),
    )
    return system, records
