"""
Aggregate Transformer - virtual addresses derived from real ones.

A virtual address combines the current transformed values of several real
addresses through an aggregate function (see oscbridge.transforms). It has
no buffer of its own, only a single cached output vector:

    - empty until the virtual address is first read
    - recomputed on every read of the virtual address
    - once read, recomputed whenever a sample for one of its sources
      arrives, so get_buffer_contents always reflects the latest inputs

Refreshing on write uses the wrapped transformer's side-effect free peek
(Bufferable capability), so keeping the cache current never marks a source
read and never shortens its coalescing window. Wrapped transformers without
that capability are refreshed on the next read instead.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from oscbridge.log import get_logger
from oscbridge.transformer import Bufferable, MessageTransformer, Sample
from oscbridge.transforms import AggregateFunction, get_aggregate_function

logger = get_logger(__name__)

Vector = List[float]


@dataclass(frozen=True)
class VirtualAddressConfig:
    """Definition of one virtual address.

    Attributes:
        virtual_address: Address the derived value is published under
        source_addresses: Real addresses combined, in order
        aggregate_function: {source_address: vector} -> vector
        function_name: Wire name of the aggregate function, for reporting
    """
    virtual_address: str
    source_addresses: Tuple[str, ...]
    aggregate_function: AggregateFunction = field(compare=False)
    function_name: Optional[str] = None

    @classmethod
    def from_names(cls, virtual_address: str, source_addresses: Sequence[str],
                   function_name: str) -> "VirtualAddressConfig":
        """Build a config from a registered aggregate function name.

        Raises:
            ValueError: If function_name is unknown or no sources are given
        """
        if not source_addresses:
            raise ValueError(f"Virtual address {virtual_address} needs at least one source address")
        return cls(
            virtual_address=virtual_address,
            source_addresses=tuple(source_addresses),
            aggregate_function=get_aggregate_function(function_name),
            function_name=function_name,
        )

    def to_dict(self) -> dict:
        return {
            "address": self.virtual_address,
            "sources": list(self.source_addresses),
            "function": self.function_name,
        }


class AggregateTransformer:
    """Wraps a transformer and adds virtual addresses.

    Args:
        base_transformer: Any MessageTransformer (typically BufferedTransformer)
        aggregate_configs: Virtual address definitions, fixed after construction
    """

    def __init__(self, base_transformer: MessageTransformer,
                 aggregate_configs: Sequence[VirtualAddressConfig] = ()):
        self.base_transformer = base_transformer
        self.virtual_addresses: Dict[str, VirtualAddressConfig] = {}
        self._cache: Dict[str, Vector] = {}
        self._read_virtual: Set[str] = set()
        # source address -> virtual addresses depending on it
        self._dependents: Dict[str, List[str]] = {}

        for config in aggregate_configs:
            self.register_virtual_address(config)

    def register_virtual_address(self, config: VirtualAddressConfig) -> None:
        """Add a virtual address. Intended for construction/start time only."""
        if config.virtual_address in self.virtual_addresses:
            raise ValueError(f"Virtual address already registered: {config.virtual_address}")
        self.virtual_addresses[config.virtual_address] = config
        for source in config.source_addresses:
            self._dependents.setdefault(source, []).append(config.virtual_address)

    def add_message(self, sample: Sample) -> None:
        """Delegate to the wrapped transformer, then refresh dependent caches."""
        self.base_transformer.add_message(sample)

        for virtual_address in self._dependents.get(sample.address, ()):
            if virtual_address in self._read_virtual:
                self._refresh_cache(virtual_address)

    def get_addresses(self) -> List[str]:
        """Real addresses followed by virtual addresses, without duplicates."""
        return self.get_real_addresses() + self.get_virtual_addresses()

    def get_real_addresses(self) -> List[str]:
        """Addresses with real samples; a name registered as virtual is shadowed."""
        return [address for address in self.base_transformer.get_addresses()
                if address not in self.virtual_addresses]

    def get_virtual_addresses(self) -> List[str]:
        return list(self.virtual_addresses)

    def is_virtual(self, address: str) -> bool:
        return address in self.virtual_addresses

    def get_transformed_address(self, address: str) -> Optional[Vector]:
        """Value of a real or virtual address.

        Virtual addresses are marked read and recomputed from their sources;
        sources without a value are skipped. Returns None when no source has
        produced data yet.
        """
        if address not in self.virtual_addresses:
            return self.base_transformer.get_transformed_address(address)

        self._read_virtual.add(address)
        config = self.virtual_addresses[address]
        source_values = {}
        for source in config.source_addresses:
            value = self.base_transformer.get_transformed_address(source)
            if value is not None:
                source_values[source] = value

        return self._store(address, config, source_values)

    def get_transformed_messages(self) -> Dict[str, Vector]:
        """Every real value plus every virtual address that has a value."""
        result = {address: value
                  for address, value in self.base_transformer.get_transformed_messages().items()
                  if address not in self.virtual_addresses}
        for virtual_address in self.virtual_addresses:
            value = self.get_transformed_address(virtual_address)
            if value is not None:
                result[virtual_address] = value
        return result

    def get_buffer_contents(self, address: str) -> List[Vector]:
        """Cached vector as a one-element list for virtual addresses.

        Real addresses delegate when the wrapped transformer is Bufferable.
        """
        if address in self.virtual_addresses:
            cached = self._cache.get(address)
            return [list(cached)] if cached is not None else []
        if isinstance(self.base_transformer, Bufferable):
            return self.base_transformer.get_buffer_contents(address)
        return []

    def peek_transformed_address(self, address: str) -> Optional[Vector]:
        """Side-effect free value: cached for virtual, peeked for real addresses."""
        if address in self.virtual_addresses:
            cached = self._cache.get(address)
            return list(cached) if cached is not None else None
        if isinstance(self.base_transformer, Bufferable):
            return self.base_transformer.peek_transformed_address(address)
        return None

    def _refresh_cache(self, virtual_address: str) -> None:
        if not isinstance(self.base_transformer, Bufferable):
            return
        config = self.virtual_addresses[virtual_address]
        source_values = {}
        for source in config.source_addresses:
            value = self.base_transformer.peek_transformed_address(source)
            if value is not None:
                source_values[source] = value
        self._store(virtual_address, config, source_values)

    def _store(self, virtual_address: str, config: VirtualAddressConfig,
               source_values: Dict[str, Vector]) -> Optional[Vector]:
        if not source_values:
            return None
        value = config.aggregate_function(source_values)
        self._cache[virtual_address] = list(value)
        logger.debug(f"{virtual_address} <- {sorted(source_values)}: {value}")
        return value


def create_aggregate_transformer(base_transformer: MessageTransformer,
                                 aggregate_configs: Sequence[VirtualAddressConfig]) -> AggregateTransformer:
    return AggregateTransformer(base_transformer, aggregate_configs)
