"""
Base Transformer - buffered, read-coalescing view of the OSC stream.

ARCHITECTURE:
    Sample -> add_message -> AddressBufferStore (append, or flush-then-append
    if the address was read since its last write)

    get_transformed_address(address):
        marks the address read, maps the element transform over every
        buffered vector, then reduces the mapped list to one vector

COALESCING CONTRACT:
    Between two polls an address accumulates every sample, so a time-average
    reducer yields "average since last poll". Once a consumer has observed a
    value, the next sample starts a fresh window and the observed history is
    discarded. An address nobody reads grows without bound.

Transformers are not synchronised; ListenerService serialises the UDP
receive path against HTTP reads with a single lock.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from oscbridge.buffers import AddressBufferStore
from oscbridge.log import get_logger
from oscbridge.transforms import (
    ElementTransform,
    ReduceTransform,
    element_transform,
    last_value_reduce,
    time_average_reduce,
)

logger = get_logger(__name__)

Vector = List[float]


@dataclass(frozen=True)
class Sample:
    """One inbound OSC message: address, numeric args, receive time (ms)."""
    address: str
    args: Tuple[float, ...]
    timestamp: int

    @classmethod
    def create(cls, address: str, args: Sequence[float], timestamp: int) -> "Sample":
        return cls(address=address, args=tuple(args), timestamp=int(timestamp))


@runtime_checkable
class MessageTransformer(Protocol):
    """Read/write contract shared by every transformer in the chain."""

    def add_message(self, sample: Sample) -> None: ...

    def get_addresses(self) -> List[str]: ...

    def get_transformed_address(self, address: str) -> Optional[Vector]: ...

    def get_transformed_messages(self) -> Dict[str, Vector]: ...


@runtime_checkable
class Bufferable(Protocol):
    """Optional capability: buffer inspection without read side effects."""

    def get_buffer_contents(self, address: str) -> List[Vector]: ...

    def peek_transformed_address(self, address: str) -> Optional[Vector]: ...


class BufferedTransformer:
    """Owns the per-address buffers; transforms on read.

    Args:
        reduce_transform: Collapses the element-transformed window to one vector
        element_transform: Normalises each raw vector (default: band-power policy)

    Example:
        >>> t = BufferedTransformer(last_value_reduce)
        >>> t.add_message(Sample.create("/muse/eeg", [1, 2], 1000))
        >>> t.get_transformed_address("/muse/eeg")
        [1, 2]
    """

    def __init__(self, reduce_transform: ReduceTransform,
                 element_transform: ElementTransform = element_transform):
        self.reduce_transform = reduce_transform
        self.element_transform = element_transform
        self.buffers = AddressBufferStore()

    def add_message(self, sample: Sample) -> None:
        """Buffer one sample, starting a fresh window if the address was read."""
        flushed = self.buffers.append(sample.address, sample.args, sample.timestamp)
        if flushed:
            logger.debug(f"Flushed {sample.address} (read since last write)")

    def get_addresses(self) -> List[str]:
        """Every address that has ever received a sample, first-seen order."""
        return self.buffers.addresses()

    def get_transformed_address(self, address: str) -> Optional[Vector]:
        """Transformed value for one address; marks it read.

        Returns:
            Reduced vector, or None if the address has never been seen
        """
        if not self.buffers.mark_read(address):
            return None
        return self._transform(address)

    def peek_transformed_address(self, address: str) -> Optional[Vector]:
        """Same value as get_transformed_address without marking the address read."""
        if address not in self.buffers:
            return None
        return self._transform(address)

    def get_transformed_messages(self) -> Dict[str, Vector]:
        """Transformed value of every address whose buffer is non-empty.

        Every included address is marked read.
        """
        result = {}
        for address in self.buffers.addresses():
            buffer = self.buffers.get(address)
            if buffer is None or len(buffer) == 0:
                continue
            value = self.get_transformed_address(address)
            if value is not None:
                result[address] = value
        return result

    def get_buffer_contents(self, address: str) -> List[Vector]:
        """Raw buffered vectors (diagnostic; no transform, no read marking)."""
        return self.buffers.contents(address)

    def _transform(self, address: str) -> Vector:
        mapped = [self.element_transform(vector, address)
                  for vector in self.buffers.contents(address)]
        return self.reduce_transform(mapped)


def create_average_transformer(element: ElementTransform = element_transform) -> BufferedTransformer:
    """Transformer whose value is the column-wise mean since the last poll."""
    return BufferedTransformer(time_average_reduce, element)


def create_last_value_transformer(element: ElementTransform = element_transform) -> BufferedTransformer:
    """Transformer whose value is the most recent sample."""
    return BufferedTransformer(last_value_reduce, element)
