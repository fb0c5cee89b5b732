"""
Maintenance Scheduler - periodic housekeeping for the listener service.

Runs on its own daemon thread next to the UDP receive thread and the Flask
workers. The server registers two jobs:

    expire-sessions   drop idle visualizer sessions (cleanup_interval_s)
    flush-recording   write CSV rows older than record_flush_interval_s

A failing job is logged and retried at its next interval; it never stops the
loop or the other jobs. When given a MessageStatistics, every failure bumps
`maintenance_errors`, which surfaces in GET /api/stats and in the shutdown
statistics block.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from oscbridge import osc
from oscbridge.log import get_logger

logger = get_logger(__name__)


@dataclass
class MaintenanceJob:
    name: str
    interval_s: float
    run: Callable[[], None]
    last_run: float = 0.0
    failures: int = 0

    def due(self, now: float) -> bool:
        return now - self.last_run >= self.interval_s


class Scheduler:
    """Runs maintenance jobs at fixed intervals on one daemon thread.

    Args:
        tick_s: How often the loop checks for due jobs
        clock: Time source in seconds (injectable for tests)
        stats: Optional counters; failures increment 'maintenance_errors'
    """

    def __init__(self, tick_s: float = 1.0, clock=time.monotonic,
                 stats: Optional[osc.MessageStatistics] = None):
        self.tick_s = tick_s
        self._clock = clock
        self.stats = stats
        self._jobs: Dict[str, MaintenanceJob] = {}
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def add_task(self, name: str, interval_s: float, run: Callable[[], None]) -> None:
        """Register a job; its first run is one interval from now."""
        self._jobs[name] = MaintenanceJob(name=name, interval_s=interval_s, run=run,
                                          last_run=self._clock())

    @property
    def jobs(self) -> List[MaintenanceJob]:
        return list(self._jobs.values())

    def run_pending(self) -> None:
        """Run every job whose interval has elapsed."""
        now = self._clock()
        for job in self.jobs:
            if not job.due(now):
                continue
            job.last_run = now
            try:
                job.run()
            except Exception as e:
                job.failures += 1
                if self.stats is not None:
                    self.stats.increment('maintenance_errors')
                logger.exception(f"Maintenance job {job.name} failed ({job.failures} total): {e}")

    def start(self) -> None:
        if self._thread:
            return

        def _loop():
            while not self._stop.is_set():
                self.run_pending()
                self._stop.wait(self.tick_s)

        self._thread = threading.Thread(target=_loop, name="oscbridge-maintenance", daemon=True)
        self._thread.start()
        logger.debug(f"Maintenance thread started: {', '.join(self._jobs) or 'no jobs'}")

    def stop(self) -> None:
        if self._thread:
            self._stop.set()
            self._thread.join(timeout=2)
            self._thread = None
            self._stop.clear()

    @property
    def running(self) -> bool:
        return self._thread is not None
