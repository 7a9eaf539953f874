"""Sampling loop for proctop."""

import logging
import threading
from queue import Queue

from proctop.engine import compute
from proctop.errors import ProctopError
from proctop.models import CycleReport, CycleStatus
from proctop.source import CounterSource, PsutilCounterSource
from proctop.store import SnapshotStore

logger = logging.getLogger(__name__)

MIN_POLL_RATE = 0.1
MAX_POLL_RATE = 10.0


class SystemMonitor:
    """
    System monitor that samples counters and derives utilization each cycle.

    Runs in a separate daemon thread and pushes one CycleReport per cycle to a
    thread-safe Queue. The monitor owns its SnapshotStore; only the sampling
    thread (or a direct run_cycle() caller) touches it.

    A cycle where the counter source cannot be read is reported as
    UNAVAILABLE and leaves the stored snapshot untouched. After max_failures
    such cycles in a row the monitor reports FAILED and stops.
    """

    def __init__(
        self,
        update_queue: Queue[CycleReport],
        poll_rate: float = 1.0,
        source: CounterSource | None = None,
        max_failures: int = 5,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push reports to.
            poll_rate: Seconds between cycles. Default 1.0s.
            source: Counter source to read. Defaults to PsutilCounterSource.
            max_failures: Consecutive unavailable cycles tolerated before giving up.
        """
        self._queue = update_queue
        self._poll_rate = 1.0
        self.poll_rate = poll_rate
        self._source = source if source is not None else PsutilCounterSource()
        self._store = SnapshotStore()
        self._max_failures = max(1, max_failures)
        self._failures = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate, clamped to a sane range."""
        self._poll_rate = min(MAX_POLL_RATE, max(MIN_POLL_RATE, value))

    @property
    def store(self) -> SnapshotStore:
        """Get the snapshot store owned by this monitor."""
        return self._store

    @property
    def consecutive_failures(self) -> int:
        """Get the number of unavailable cycles since the last good one."""
        return self._failures

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        The request takes effect at the next cycle boundary; a sample in
        progress is allowed to finish.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            if self._thread is not threading.current_thread():
                self._thread.join(timeout=timeout)
            self._thread = None

    def run_cycle(self) -> CycleReport:
        """
        Run one sample, compute, commit and prune cycle.

        Returns:
            The report for this cycle. Counter source errors are reported,
            never raised.
        """
        try:
            snapshot = self._source.snapshot()
        except ProctopError as exc:
            return self._unavailable(exc)

        self._failures = 0
        previous = self._store.commit(snapshot)
        system, records = compute(previous, snapshot)
        pruned = self._store.prune_stale(snapshot.entities)
        if pruned:
            logger.debug("pruned %d stale pids", pruned)

        return CycleReport(status=CycleStatus.OK, system=system, records=tuple(records))

    def _unavailable(self, exc: ProctopError) -> CycleReport:
        self._failures += 1
        if self._failures >= self._max_failures:
            logger.error("counter source failed %d times in a row: %s", self._failures, exc)
            return CycleReport(
                status=CycleStatus.FAILED,
                message=f"Counter source unavailable after {self._failures} attempts: {exc}",
            )

        logger.warning("skipping cycle (%d/%d): %s", self._failures, self._max_failures, exc)
        return CycleReport(status=CycleStatus.UNAVAILABLE, message=f"No data this cycle: {exc}")

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                report = self.run_cycle()
            except Exception:
                # Keep sampling; one bad cycle must not end the loop
                logger.exception("unexpected error during sampling cycle")
            else:
                self._queue.put(report)
                if report.status is CycleStatus.FAILED:
                    break

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)
