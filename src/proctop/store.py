"""Snapshot store: the single previous sample the delta engine compares against."""

from collections.abc import Iterable

from proctop.models import EntityCounterSample, Snapshot


class SnapshotStore:
    """
    Holds the most recent committed snapshot and per-process bookkeeping.

    The per-process table is keyed by pid and merged on every commit. Entries
    are only removed by prune_stale(), which keeps the table bounded by the
    number of live processes rather than every pid ever seen.

    One store belongs to one monitoring loop; it is not shared between
    threads.
    """

    def __init__(self) -> None:
        """Initialize an empty SnapshotStore."""
        self._current: Snapshot | None = None
        self._entities: dict[int, EntityCounterSample] = {}

    @property
    def current(self) -> Snapshot | None:
        """Get the most recently committed snapshot."""
        return self._current

    @property
    def tracked_ids(self) -> frozenset[int]:
        """Get the pids that currently have bookkeeping."""
        return frozenset(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def commit(self, snapshot: Snapshot) -> Snapshot | None:
        """
        Make snapshot current and return what was current before.

        The returned snapshot carries the bookkeeping table as it stood before
        the merge, so a pid missing from it had no prior reading. Returns None
        on the first commit: there is nothing to compute deltas against yet.
        """
        previous = self._current
        if previous is not None:
            previous = Snapshot(
                system=previous.system,
                entities=dict(self._entities),
                memory=previous.memory,
                uptime_seconds=previous.uptime_seconds,
                captured_at=previous.captured_at,
            )

        self._entities.update(snapshot.entities)
        self._current = snapshot
        return previous

    def prune_stale(self, current_ids: Iterable[int]) -> int:
        """
        Drop bookkeeping for pids that are no longer live.

        Args:
            current_ids: The pids enumerated in the latest cycle.

        Returns:
            The number of entries removed.
        """
        live = set(current_ids)
        stale = [pid for pid in self._entities if pid not in live]
        for pid in stale:
            del self._entities[pid]
        return len(stale)

