"""Ordering and filtering of derived process records."""

from collections.abc import Iterable
from enum import Enum

from proctop.models import DerivedMetricRecord


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"

    def toggle(self) -> "SortKey":
        """Return the other sort key."""
        return SortKey.MEM if self is SortKey.CPU else SortKey.CPU


def filter_records(
    records: Iterable[DerivedMetricRecord], text: str
) -> list[DerivedMetricRecord]:
    """Keep records whose label contains text (case-sensitive). Empty text keeps all."""
    if not text:
        return list(records)
    return [record for record in records if text in record.label]


def sort_records(
    records: Iterable[DerivedMetricRecord], key: SortKey = SortKey.CPU
) -> list[DerivedMetricRecord]:
    """
    Order records by the sort key, descending.

    Ties fall back to the other metric (also descending) and finally to pid
    ascending, so the order is fully deterministic.
    """
    key_func = {
        SortKey.CPU: lambda r: (-r.cpu_percent, -r.resident_kb, r.pid),
        SortKey.MEM: lambda r: (-r.resident_kb, -r.cpu_percent, r.pid),
    }
    return sorted(records, key=key_func[key])


def rank(
    records: Iterable[DerivedMetricRecord],
    key: SortKey = SortKey.CPU,
    text: str = "",
) -> list[DerivedMetricRecord]:
    """Filter, then sort."""
    return sort_records(filter_records(records, text), key)
