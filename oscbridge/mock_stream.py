#!/usr/bin/env python3
"""
Mock OSC Stream - sends recorded or random data to the bridge.

Data sources:
- Standard CSV: timestamp,address,value1,value2,... (the format
  oscbridge.recorder writes). One message per row; the timestamp column is
  ignored, non-numeric values become 0, a missing address becomes /mock/data.
- Columns file (*.columns): a whitespace-separated header of addresses, then
  one row of values per batch. Each row sends one single-float message per
  column; lines starting with # are skipped.
- No file: /mock/data with three random values in [0, 100).

Batches are sent at a fixed rate (batches per second). Recorded data is
replayed in order, from the start again when --loop is given.

USAGE:
    python -m oscbridge.mock_stream
    python -m oscbridge.mock_stream recordings/osc_data_20240101_120000.csv --loop
    python -m oscbridge.mock_stream eeg.columns --rate 256 --port 9005
"""

import argparse
import csv
import signal
import sys
import time
from typing import List, Optional, Tuple

import numpy as np
from pythonosc import udp_client

from oscbridge import osc
from oscbridge.log import get_logger, set_level

logger = get_logger(__name__)

MOCK_ADDRESS = "/mock/data"

Message = Tuple[str, List[float]]
Batch = List[Message]


def _to_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        return 0.0
    return value if np.isfinite(value) else 0.0


def load_standard_csv(path: str) -> List[Batch]:
    """One single-message batch per non-empty row."""
    batches = []
    with open(path, 'r', newline='') as f:
        for row in csv.reader(f):
            row = [cell.strip() for cell in row]
            if not any(row):
                continue
            address = row[1] if len(row) > 1 and row[1] else MOCK_ADDRESS
            values = [_to_float(cell) for cell in row[2:]]
            batches.append([(address, values)])
    logger.info(f"Loaded {len(batches)} messages from standard CSV {path}")
    return batches


def load_columns(path: str) -> List[Batch]:
    """One batch per data line, one message per header column.

    Raises:
        ValueError: If the file has no header or no data line
    """
    with open(path, 'r') as f:
        lines = [line.strip() for line in f]
    lines = [line for line in lines if line and not line.startswith('#')]
    if len(lines) < 2:
        raise ValueError(f"{path}: need a header line and at least one data line")

    headers = lines[0].split()
    logger.info(f"Detected {len(headers)} channels: {', '.join(headers[:5])}")

    batches = []
    for line in lines[1:]:
        batch = []
        for address, text in zip(headers, line.split()):
            try:
                value = float(text)
            except ValueError:
                continue
            if np.isnan(value):
                continue
            batch.append((address, [value]))
        if batch:
            batches.append(batch)

    logger.info(f"Loaded {len(batches)} message batches from columns file {path}")
    return batches


def load_data(path: str) -> List[Batch]:
    if path.endswith('.columns'):
        return load_columns(path)
    return load_standard_csv(path)


class MockStream:
    """Fixed-rate OSC sender.

    Args:
        host: Target OSC host
        port: Target OSC port (default: 9005)
        rate: Batches per second (default: 1)
        batches: Recorded data; random messages are sent when empty
        loop: Restart recorded data at the end instead of stopping
        seed: Seed for random data
    """

    def __init__(self, host: str = "127.0.0.1", port: int = osc.DEFAULT_OSC_PORT,
                 rate: float = 1.0, batches: Optional[List[Batch]] = None,
                 loop: bool = False, seed: Optional[int] = None):
        if rate <= 0:
            raise ValueError(f"rate must be > 0, got {rate}")
        self.host = host
        self.port = port
        self.rate = rate
        self.batches = batches or []
        self.loop = loop
        self.rng = np.random.default_rng(seed)
        self.client = udp_client.SimpleUDPClient(host, port)

        self.position = 0
        self.running = False
        self.batch_count = 0
        self.message_count = 0

    def random_message(self) -> Message:
        return MOCK_ADDRESS, [float(v) for v in self.rng.uniform(0, 100, 3)]

    def next_batch(self) -> Optional[Batch]:
        """Next batch to send, or None when recorded data is exhausted."""
        if not self.batches:
            return [self.random_message()]
        if self.position >= len(self.batches):
            if not self.loop:
                return None
            self.position = 0
        batch = self.batches[self.position]
        self.position += 1
        return batch

    def send_next(self) -> bool:
        """Send one batch. Returns False when there is nothing left."""
        batch = self.next_batch()
        if batch is None:
            return False
        for address, values in batch:
            self.client.send_message(address, values)
            self.message_count += 1
        self.batch_count += 1
        return True

    def run(self, max_batches: Optional[int] = None):
        """Send until stopped, exhausted, or max_batches have been sent."""
        self.running = True
        source = f"{len(self.batches)} recorded batches" if self.batches else "random data"
        logger.info(f"Sending {source} to {self.host}:{self.port} at {self.rate} Hz"
                    f"{' (looping)' if self.loop and self.batches else ''}")

        interval = 1.0 / self.rate
        next_send = time.time()
        try:
            while self.running:
                if max_batches is not None and self.batch_count >= max_batches:
                    break
                if not self.send_next():
                    logger.info("End of recorded data")
                    break

                # Sleep with drift compensation
                next_send += interval
                sleep_time = next_send - time.time()
                if sleep_time > 0:
                    time.sleep(sleep_time)
        except KeyboardInterrupt:
            pass
        finally:
            self.running = False
            logger.info(f"Mock stream stopped: {self.batch_count} batches, {self.message_count} messages")

    def stop(self):
        self.running = False


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Mock OSC stream for testing the bridge")
    parser.add_argument("csv_path", nargs="?",
                        help="Recorded data (.csv standard format or .columns); random data if omitted")
    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="Target OSC host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=osc.DEFAULT_OSC_PORT,
                        help=f"Target OSC port (default: {osc.DEFAULT_OSC_PORT})")
    parser.add_argument("--rate", type=float, default=1.0,
                        help="Batches per second (default: 1)")
    parser.add_argument("--loop", action="store_true",
                        help="Replay recorded data from the start when it ends")
    parser.add_argument("--seed", type=int, help="Seed for random data")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: OSCBRIDGE_LOG_LEVEL or INFO)"
    )
    args = parser.parse_args()

    if args.log_level:
        set_level(args.log_level)

    try:
        osc.validate_port(args.port)
    except ValueError as e:
        logger.error(f"port: {e}")
        sys.exit(1)

    batches = []
    if args.csv_path:
        try:
            batches = load_data(args.csv_path)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading data: {e}")
            sys.exit(1)

    try:
        stream = MockStream(host=args.host, port=args.port, rate=args.rate,
                            batches=batches, loop=args.loop, seed=args.seed)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    def signal_handler(sig, frame):
        stream.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    stream.run()


if __name__ == "__main__":
    main()
