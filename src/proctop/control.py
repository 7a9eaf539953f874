"""Process termination requests."""

import logging
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TerminationResult:
    """Outcome of a termination request."""

    pid: int
    ok: bool
    message: str


def terminate_entity(pid: int, timeout: float = 2.0) -> TerminationResult:
    """
    Send SIGTERM to pid and wait a bounded time for it to exit.

    Never raises: permission problems and unknown pids are reported in the
    result. A process that is still alive after timeout counts as signalled.

    Args:
        pid: Process id to terminate.
        timeout: Maximum seconds to wait for the process to exit.
    """
    if pid <= 0:
        return TerminationResult(pid, False, f"Invalid PID {pid}")

    try:
        proc = psutil.Process(pid)
        proc.terminate()
    except psutil.NoSuchProcess:
        return TerminationResult(pid, False, f"No such process: {pid}")
    except psutil.AccessDenied:
        return TerminationResult(pid, False, f"Permission denied: {pid}")
    except OSError as exc:
        logger.warning("terminate %d failed: %s", pid, exc)
        return TerminationResult(pid, False, f"Failed to kill {pid}: {exc}")

    try:
        proc.wait(timeout=max(0.0, timeout))
    except psutil.TimeoutExpired:
        logger.info("pid %d signalled but still running after %.1fs", pid, timeout)
        return TerminationResult(pid, True, f"Process {pid} signalled")
    except psutil.NoSuchProcess:
        pass

    logger.info("pid %d terminated", pid)
    return TerminationResult(pid, True, f"Process {pid} terminated.")
