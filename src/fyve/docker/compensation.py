"""LIFO undo log for multi-step container mutations."""
import logging
import threading
from typing import Callable, List

from fyve.docker.errors import RollbackError

logger = logging.getLogger(__name__)

CompensationStep = Callable[[], None]


class CompensationStack:
    """Records undo steps as side effects succeed and replays them on failure.

    ``disarm`` and ``unwind`` race for a single token: whichever runs first
    wins and the other becomes a no-op.

    Usage:
        stack = CompensationStack()
        stack.arm()
        try:
            do_something()
            stack.push(undo_something)
            ...
            stack.disarm()
        finally:
            stack.unwind()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._armed = False
        self._steps: List[CompensationStep] = []

    @property
    def armed(self) -> bool:
        return self._armed

    def arm(self) -> None:
        """Start a fresh, empty undo log."""
        with self._lock:
            if self._armed:
                raise RuntimeError("compensation stack is already armed")
            self._steps = []
            self._armed = True

    def push(self, step: CompensationStep) -> None:
        """Record an undo step; ignored unless armed."""
        with self._lock:
            if self._armed:
                self._steps.append(step)

    def disarm(self) -> bool:
        """Commit: drop the undo log so nothing is replayed.

        Returns:
            True if this call committed, False if already disarmed or unwound
        """
        with self._lock:
            if not self._armed:
                return False
            self._armed = False
            self._steps = []
            return True

    def unwind(self) -> bool:
        """Replay recorded steps, last pushed first.

        Every step runs even when an earlier one fails.

        Returns:
            True if steps were replayed, False if the stack was already disarmed

        Raises:
            RollbackError: If one or more steps raised
        """
        with self._lock:
            if not self._armed:
                return False
            self._armed = False
            steps, self._steps = self._steps, []

        failures = []
        for step in reversed(steps):
            step_name = getattr(step, "__name__", repr(step))
            try:
                step()
            except Exception as e:
                logger.error(f"Compensation step {step_name} failed: {e}")
                failures.append(f"{step_name}: {e}")

        if failures:
            raise RollbackError(failures)
        return True
