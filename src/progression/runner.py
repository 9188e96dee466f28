"""Background thread that keeps the progression environment on wall-clock time."""

import logging
import threading
import time

import simpy

logger = logging.getLogger(__name__)


class ProgressionRunner:
    """Advances a SimPy environment in step with wall-clock time.

    One simulated second equals one real second, so progression delays and
    the resale sweeper fire at their configured wall-clock times.
    """

    def __init__(
        self,
        env: simpy.Environment,
        lock: threading.RLock,
        tick_seconds: float = 0.1,
    ) -> None:
        self._env = env
        self._lock = lock
        self._tick_seconds = tick_seconds
        self._running = False
        self._thread: threading.Thread | None = None
        self._started_wall = 0.0
        self._started_sim = 0.0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the progression loop in a background thread."""
        self._started_wall = time.monotonic()
        self._started_sim = float(self._env.now)
        self._running = True
        self._thread = threading.Thread(
            target=self._run_loop, name="progression-runner", daemon=True
        )
        self._thread.start()
        logger.info("Progression loop started in background thread")

    def stop(self) -> None:
        """Stop the progression loop."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=5.0)
        logger.info("Progression loop stopped")

    def step(self) -> None:
        """Run every event due up to the current wall-clock time."""
        target = self._started_sim + (time.monotonic() - self._started_wall)
        with self._lock:
            if target > self._env.now:
                self._env.run(until=target)

    def _run_loop(self) -> None:
        while self._running:
            try:
                self.step()
            except Exception:
                logger.exception("Progression step failed")
            time.sleep(self._tick_seconds)
