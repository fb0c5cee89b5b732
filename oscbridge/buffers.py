"""
Per-address sample buffers.

Each address owns an append-only pair of parallel sequences (raw vectors and
their receive timestamps) plus a two-state read marker:

    ACCUMULATING --read--> CONSUMED --write--> ACCUMULATING (fresh window)

While ACCUMULATING, every write appends, so a reducer sees everything that
arrived since the previous poll. The first write after a read clears the
buffer before appending, so history a consumer has already observed is
never reduced again.

Buffers are never removed, only cleared, so an address stays known for the
lifetime of the store.
"""

from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence

Vector = List[float]


class BufferState(Enum):
    ACCUMULATING = "accumulating"
    CONSUMED = "consumed"


class AddressBuffer:
    """Raw vectors and timestamps received for one address."""

    __slots__ = ("address", "values", "timestamps", "state")

    def __init__(self, address: str):
        self.address = address
        self.values: List[Vector] = []
        self.timestamps: List[int] = []
        self.state = BufferState.ACCUMULATING

    def __len__(self) -> int:
        return len(self.values)

    def append(self, vector: Sequence[float], timestamp: int) -> None:
        self.values.append(list(vector))
        self.timestamps.append(timestamp)

    def clear(self) -> None:
        self.values.clear()
        self.timestamps.clear()

    def mark_consumed(self) -> None:
        self.state = BufferState.CONSUMED

    @property
    def consumed(self) -> bool:
        return self.state is BufferState.CONSUMED

    def latest_timestamp(self) -> Optional[int]:
        return self.timestamps[-1] if self.timestamps else None


class AddressBufferStore:
    """Mapping of address to AddressBuffer with flush-on-write-after-read.

    Not synchronised: callers serialise access (see ListenerService).
    """

    def __init__(self):
        self._buffers: Dict[str, AddressBuffer] = {}

    def __contains__(self, address: str) -> bool:
        return address in self._buffers

    def __iter__(self) -> Iterator[str]:
        return iter(self._buffers)

    def __len__(self) -> int:
        return len(self._buffers)

    def addresses(self) -> List[str]:
        """Known addresses in first-seen order."""
        return list(self._buffers)

    def get(self, address: str) -> Optional[AddressBuffer]:
        return self._buffers.get(address)

    def append(self, address: str, vector: Sequence[float], timestamp: int) -> bool:
        """Append a sample, creating the buffer if absent.

        A CONSUMED buffer is cleared first and returns to ACCUMULATING.

        Returns:
            True if prior history was flushed by this write
        """
        buffer = self._buffers.get(address)
        if buffer is None:
            buffer = AddressBuffer(address)
            self._buffers[address] = buffer

        flushed = False
        if buffer.consumed:
            buffer.clear()
            buffer.state = BufferState.ACCUMULATING
            flushed = True

        buffer.append(vector, timestamp)
        return flushed

    def mark_read(self, address: str) -> bool:
        """Move an existing buffer to CONSUMED. Returns False if unknown."""
        buffer = self._buffers.get(address)
        if buffer is None:
            return False
        buffer.mark_consumed()
        return True

    def contents(self, address: str) -> List[Vector]:
        """Copies of the buffered vectors in arrival order (empty if unknown).

        Copies keep callers and transforms from mutating stored history.
        """
        buffer = self._buffers.get(address)
        if buffer is None:
            return []
        return [list(vector) for vector in buffer.values]

    def clear(self, address: str) -> None:
        """Empty one buffer, keeping the address known."""
        buffer = self._buffers.get(address)
        if buffer is not None:
            buffer.clear()

    def read_addresses(self) -> List[str]:
        """Addresses currently in the CONSUMED state."""
        return [address for address, buffer in self._buffers.items() if buffer.consumed]
