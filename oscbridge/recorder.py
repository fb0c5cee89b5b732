"""
CSV recording sink for raw samples.

Each sample becomes one row:

    timestamp,address,value1,value2,...

Rows are batched in memory and written when either threshold trips:
    - batch_size rows are pending, or
    - flush_interval_s has elapsed since the last write (checked on every
      record() and by the scheduler calling flush_if_due())

The file written here is the "standard" format oscbridge.mock_stream
replays, so a recorded session can be streamed back into the bridge.

Write failures are logged and the batch dropped; recording never raises
into the UDP receive path.
"""

import csv
import os
import threading
import time
from typing import IO, List, Optional

from oscbridge.log import get_logger
from oscbridge.transformer import Sample

logger = get_logger(__name__)


class CsvRecorder:
    """Batched CSV writer for samples.

    Args:
        path: Output file (parent directories are created; appends if present)
        batch_size: Pending rows that force a write
        flush_interval_s: Maximum age of pending rows before a write
        clock: Time source in seconds (injectable for tests)
    """

    def __init__(self, path: str, batch_size: int = 100, flush_interval_s: float = 1.0,
                 clock=time.monotonic):
        self.path = path
        self.batch_size = batch_size
        self.flush_interval_s = flush_interval_s
        self._clock = clock
        self._pending: List[List[str]] = []
        self._lock = threading.Lock()
        self._file: Optional[IO[str]] = None
        self._writer = None
        self._last_flush = clock()
        self.rows_written = 0

    def open(self) -> None:
        """Create parent directory and open the file for appending."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._file = open(self.path, 'a', newline='')
        self._writer = csv.writer(self._file)
        self._last_flush = self._clock()
        logger.info(f"Recording samples to: {self.path}")

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def record(self, sample: Sample) -> None:
        """Queue one sample; write the batch if a threshold is reached."""
        row = [str(sample.timestamp), sample.address] + [str(value) for value in sample.args]
        with self._lock:
            self._pending.append(row)
            if self._should_flush():
                self._write_pending()

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def flush_if_due(self) -> None:
        """Write pending rows if the time threshold has passed."""
        with self._lock:
            if self._pending and self._clock() - self._last_flush >= self.flush_interval_s:
                self._write_pending()

    def flush(self) -> None:
        """Write all pending rows now."""
        with self._lock:
            self._write_pending()

    def close(self) -> None:
        """Write remaining rows and close the file."""
        with self._lock:
            self._write_pending()
            if self._file is not None:
                self._file.close()
                self._file = None
                self._writer = None
                logger.info(f"Recording closed: {self.path} ({self.rows_written} rows)")

    def _should_flush(self) -> bool:
        if len(self._pending) >= self.batch_size:
            return True
        return self._clock() - self._last_flush >= self.flush_interval_s

    def _write_pending(self) -> None:
        if not self._pending:
            self._last_flush = self._clock()
            return
        if self._writer is None:
            logger.warning(f"Recorder not open, dropping {len(self._pending)} rows")
            self._pending.clear()
            return

        batch = self._pending
        self._pending = []
        try:
            self._writer.writerows(batch)
            self._file.flush()
            self.rows_written += len(batch)
        except OSError as e:
            logger.error(f"Error writing {len(batch)} rows to {self.path}: {e}")
        self._last_flush = self._clock()
