"""Idle shutdown state machine for the daemon.

The manager is ACTIVE while serving. Every inbound request pushes the idle
deadline forward; once the deadline passes without activity a non-persistent
daemon moves to TERMINATING and runs its termination callbacks.
"""

import enum
import logging
import threading
import time
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 300.0


class LifecycleState(enum.Enum):
    ACTIVE = "active"
    TERMINATING = "terminating"


class IdleLifecycleManager:
    """Tracks request activity and terminates the daemon when idle.

    Attributes:
        idle_timeout: Seconds without requests before shutdown
        persistent: Never shut down on idleness
        state: Current lifecycle state
        deadline: Clock value at which the idle timer fires (None until started)
    """

    def __init__(
        self,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        persistent: bool = False,
        clock: Callable[[], float] = time.monotonic,
        check_interval: Optional[float] = None,
    ):
        """Initialize the manager.

        Args:
            idle_timeout: Idle window in seconds (default: 300)
            persistent: Disable idle shutdown
            clock: Monotonic time source, replaceable in tests
            check_interval: Seconds between watchdog checks
                (default: a quarter of the window, at most 5 seconds)
        """
        self.idle_timeout = idle_timeout
        self.persistent = persistent
        self.clock = clock
        if check_interval is None:
            check_interval = min(max(idle_timeout / 4, 0.05), 5.0)
        self.check_interval = check_interval

        self.state = LifecycleState.ACTIVE
        self.deadline: Optional[float] = None
        self.termination_reason: Optional[str] = None
        self._callbacks: List[Callable[[str], None]] = []
        self._lock = threading.Lock()
        self._watchdog: Optional[IdleWatchdogThread] = None

    def on_terminate(self, callback: Callable[[str], None]) -> None:
        """Register a callback run once, with the reason, on termination."""
        self._callbacks.append(callback)

    def start(self) -> None:
        """Arm the idle timer and start the watchdog thread."""
        self.touch()
        if self._watchdog is None:
            self._watchdog = IdleWatchdogThread(self, self.check_interval)
            self._watchdog.start()

    def stop(self) -> None:
        """Stop the watchdog thread without changing state."""
        if self._watchdog is not None:
            self._watchdog.stop()
            self._watchdog = None

    def touch(self) -> None:
        """Re-arm the idle timer after activity."""
        with self._lock:
            if self.state is not LifecycleState.ACTIVE:
                return
            self.deadline = self.clock() + self.idle_timeout

    def is_expired(self) -> bool:
        with self._lock:
            return self.deadline is not None and self.clock() >= self.deadline

    def check_idle(self) -> bool:
        """Fire the idle timer if its deadline has passed.

        Returns:
            True if the check moved the daemon to TERMINATING
        """
        if self.state is not LifecycleState.ACTIVE or not self.is_expired():
            return False
        if self.persistent:
            # Persistent daemons stay up; re-arm so the next window is measured.
            self.touch()
            return False
        minutes = self.idle_timeout / 60
        return self.terminate(f"idle for {minutes:g} minutes")

    def terminate(self, reason: str) -> bool:
        """Move to TERMINATING and run the termination callbacks.

        Returns:
            False if termination was already in progress
        """
        with self._lock:
            if self.state is LifecycleState.TERMINATING:
                return False
            self.state = LifecycleState.TERMINATING
            self.termination_reason = reason

        logger.info(f"Shutting down: {reason}")
        for callback in self._callbacks:
            try:
                callback(reason)
            except Exception as e:
                logger.error(f"Shutdown callback failed: {e}")
        return True


class IdleWatchdogThread(threading.Thread):
    """Background thread checking the idle deadline every check_interval."""

    def __init__(self, manager: IdleLifecycleManager, check_interval: float):
        super().__init__(daemon=True, name="codesense-idle-watchdog")
        self.manager = manager
        self.check_interval = check_interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.check_interval):
            if self.manager.state is LifecycleState.TERMINATING:
                return
            self.manager.check_idle()

    def stop(self) -> None:
        """Stop the watchdog thread gracefully."""
        self._stopped.set()
