"""Verification Test: Chaos Monkey - process churn while sampling.

Processes are started and terminated while the monitor runs. Sampling must
keep producing reports, drop processes that vanish mid-scan without error,
and keep per-process bookkeeping limited to the last live set.
"""

import multiprocessing
import os
import random
import time
from queue import Empty, Queue

import pytest

from proctop.models import CycleReport, CycleStatus
from proctop.monitor import SystemMonitor
from proctop.source import ProcfsCounterSource, PsutilCounterSource


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


def cleanup(processes: list[multiprocessing.Process]) -> None:
    for p in processes:
        if p.is_alive():
            p.terminate()
    for p in processes:
        p.join(timeout=1.0)


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_monitor_survives_process_termination(self):
        """Test that the monitor keeps reporting while processes die mid-poll."""
        processes = []
        for _ in range(30):
            p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
            p.start()
            processes.append(p)

        queue: Queue[CycleReport] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.2)

        try:
            monitor.start()
            report = queue.get(timeout=5.0)
            assert report.status is CycleStatus.OK

            for p in random.sample(processes, 15):
                p.terminate()
                time.sleep(0.05)

            reports_after_chaos = 0
            start_time = time.time()
            while time.time() - start_time < 3.0:
                try:
                    report = queue.get(timeout=1.0)
                except Empty:
                    continue
                assert report.status is CycleStatus.OK
                for record in report.records:
                    assert 0.0 <= record.cpu_percent <= 100.0
                reports_after_chaos += 1

            assert reports_after_chaos >= 3, (
                f"Expected at least 3 reports after chaos, got {reports_after_chaos}"
            )
            assert monitor.is_running, "Monitor should still be running after chaos"
        finally:
            monitor.stop()
            cleanup(processes)

    @pytest.mark.parametrize("source_cls", [PsutilCounterSource, ProcfsCounterSource])
    def test_bookkeeping_tracks_live_set_under_churn(self, source_cls):
        """Test the store holds exactly the last sampled pids after rapid churn."""
        if source_cls is ProcfsCounterSource and not os.path.exists("/proc/stat"):
            pytest.skip("no /proc on this platform")

        queue: Queue[CycleReport] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1, source=source_cls())
        processes = []

        try:
            monitor.start()
            start_time = time.time()
            while time.time() - start_time < 3.0:
                for _ in range(3):
                    p = multiprocessing.Process(target=dummy_worker, args=(10.0,))
                    p.start()
                    processes.append(p)

                alive = [p for p in processes if p.is_alive()]
                if len(alive) > 6:
                    for p in random.sample(alive, 3):
                        p.terminate()
                time.sleep(0.1)

            assert monitor.is_running, "Monitor crashed during rapid churn"
        finally:
            monitor.stop()
            cleanup(processes)

        store = monitor.store
        assert store.current is not None
        assert store.tracked_ids == frozenset(store.current.entities)
        dead_pids = {p.pid for p in processes} - set(store.current.entities)
        assert not (dead_pids & store.tracked_ids)

    def test_sampling_handles_terminated_process(self):
        """Test sampling right after a process exits raises nothing."""
        p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
        p.start()
        time.sleep(0.1)
        p.terminate()
        p.join(timeout=1.0)

        entities = PsutilCounterSource().sample_entities()

        assert p.pid not in entities or entities[p.pid].cpu_ticks >= 0
