#!/usr/bin/env python3
"""
OSC Infrastructure - Shared OSC networking and validation utilities.

Provides argument coercion, validation, constants and statistics tracking
used by the listener, recorder and mock stream modules.

Classes:
    - MessageStatistics: Thread-safe message counter with snapshot output

Functions:
    - coerce_argument(value): Map one decoded OSC argument to a number
    - coerce_arguments(args): Coerce a full argument list, counting replacements
    - validate_port(port): Validate port in range 1-65535
    - validate_address(address): Validate OSC address path syntax

Constants:
    - DEFAULT_OSC_PORT: Sensor stream input (9005)
    - DEFAULT_HTTP_PORT: HTTP polling API (3001)
    - WAVE_CHANNELS: Address fragments identifying band-power channels
"""

import re
import threading
from typing import Any, Dict, List, Sequence, Tuple, Union


# ============================================================================
# CONSTANTS
# ============================================================================

# Port the biosensor bridge (e.g. Mind Monitor for Muse) streams to
DEFAULT_OSC_PORT = 9005
# Port the visualizers poll
DEFAULT_HTTP_PORT = 3001
DEFAULT_BIND_ADDRESS = "0.0.0.0"

# Band-power channel fragments; matched case-insensitively against addresses
WAVE_CHANNELS = ("alpha", "beta", "gamma", "delta", "theta")

# Port validation range
PORT_MIN = 1
PORT_MAX = 65535

# OSC address: one or more /segment parts, no whitespace
OSC_ADDRESS_PATTERN = re.compile(r'^(/[^\s/]+)+$')

Number = Union[int, float]


# ============================================================================
# ARGUMENT COERCION
# ============================================================================

def coerce_argument(value: Any) -> Tuple[Number, bool]:
    """Map one decoded OSC argument to a number.

    Upstream hardware occasionally emits strings, blobs or nil placeholders
    in numeric slots; those become 0 rather than an error.

    Args:
        value: Argument as decoded by pythonosc

    Returns:
        Tuple of (number, was_coerced)

    Examples:
        >>> coerce_argument(0.5)
        (0.5, False)
        >>> coerce_argument(True)
        (1, False)
        >>> coerce_argument("n/a")
        (0, True)
    """
    if isinstance(value, bool):
        return int(value), False
    if isinstance(value, (int, float)):
        return value, False
    return 0, True


def coerce_arguments(args: Sequence[Any]) -> Tuple[List[Number], int]:
    """Coerce every argument of a message.

    Returns:
        Tuple of (numeric_args, coerced_count)
    """
    values = []
    coerced = 0
    for arg in args:
        number, was_coerced = coerce_argument(arg)
        values.append(number)
        if was_coerced:
            coerced += 1
    return values, coerced


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def validate_port(port: int) -> None:
    """Validate UDP/TCP port number is in valid range.

    Args:
        port: Port number to validate

    Raises:
        ValueError: If port is not an integer in range 1-65535

    Examples:
        >>> validate_port(9005)  # OK
        >>> validate_port(0)  # Raises ValueError
        >>> validate_port(70000)  # Raises ValueError
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"Port must be an integer, got {port!r}")
    if port < PORT_MIN or port > PORT_MAX:
        raise ValueError(f"Port must be in range {PORT_MIN}-{PORT_MAX}, got {port}")


def validate_address(address: str) -> None:
    """Validate OSC address path syntax.

    Raises:
        ValueError: If address is not a slash-delimited path

    Examples:
        >>> validate_address("/muse/eeg")  # OK
        >>> validate_address("muse/eeg")  # Raises ValueError
    """
    if not isinstance(address, str) or not OSC_ADDRESS_PATTERN.match(address):
        raise ValueError(f"Invalid OSC address: {address!r}")


def is_wave_channel(address: str) -> bool:
    """True if the address names a band-power channel (alpha, beta, ...)."""
    lowered = address.lower()
    return any(channel in lowered for channel in WAVE_CHANNELS)


# ============================================================================
# MESSAGE STATISTICS
# ============================================================================

class MessageStatistics:
    """Thread-safe message statistics tracker.

    Typical counters:
        - total_messages: All received OSC messages
        - coerced_arguments: Non-numeric arguments replaced by 0
        - dropped_messages: Messages that arrived while no transformer was active
        - recorded_samples: Samples handed to the CSV recorder
        - maintenance_errors: Failed scheduler jobs (session expiry, recorder flush)

    Examples:
        >>> stats = MessageStatistics()
        >>> stats.increment('total_messages')
        >>> stats.snapshot()
        {'total_messages': 1}
    """

    def __init__(self):
        self.counters = {}
        self.lock = threading.Lock()

    def increment(self, counter_name: str, amount: int = 1) -> None:
        """Increment a counter by specified amount (thread-safe).

        Creates the counter if it doesn't exist.
        """
        with self.lock:
            self.counters[counter_name] = self.counters.get(counter_name, 0) + amount

    def get(self, counter_name: str) -> int:
        """Current value of a counter, or 0 if it doesn't exist."""
        with self.lock:
            return self.counters.get(counter_name, 0)

    def snapshot(self) -> Dict[str, int]:
        """Copy of all counters taken under the lock."""
        with self.lock:
            return dict(self.counters)

    def reset(self) -> None:
        with self.lock:
            self.counters.clear()

    def format_stats(self, title: str = "STATISTICS") -> str:
        """Render counters as a framed block for shutdown logging.

        Output format:
            ============================================================
            TITLE
            ============================================================
            Counter Name: value
            ...
            ============================================================
        """
        lines = ["=" * 60, title, "=" * 60]
        snapshot = self.snapshot()
        for name in sorted(snapshot.keys()):
            display_name = name.replace('_', ' ').title()
            lines.append(f"{display_name}: {snapshot[name]}")
        lines.append("=" * 60)
        return "\n".join(lines)
