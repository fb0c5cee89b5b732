"""
Tests for the Base Transformer

Validates buffering, read-coalescing windows, element/reduce composition
and the Bufferable capability.
"""

import pytest

from oscbridge.transformer import (
    Bufferable,
    BufferedTransformer,
    MessageTransformer,
    Sample,
    create_average_transformer,
    create_last_value_transformer,
)
from oscbridge.transforms import identity_element_transform, last_value_reduce


def sample(address, args, timestamp=1000):
    return Sample.create(address, args, timestamp)


@pytest.fixture
def transformer():
    return BufferedTransformer(last_value_reduce, identity_element_transform)


class TestSample:
    """Test the immutable sample record."""

    def test_create_normalises_types(self):
        s = Sample.create("/test", [1, 2.5], 1000.0)

        assert s.args == (1, 2.5)
        assert s.timestamp == 1000
        assert isinstance(s.timestamp, int)

    def test_frozen(self):
        s = sample("/test", [1])
        with pytest.raises(AttributeError):
            s.address = "/other"


class TestBufferedTransformer:
    """Test buffer accumulation and flush-on-write-after-read."""

    def test_accumulates_messages(self, transformer):
        transformer.add_message(sample("/test", [1, 2, 3], 1000))
        transformer.add_message(sample("/test", [4, 5, 6], 2000))

        assert transformer.get_buffer_contents("/test") == [[1, 2, 3], [4, 5, 6]]

    def test_buffer_persists_after_read_until_new_message(self, transformer):
        transformer.add_message(sample("/test", [1, 2, 3], 1000))

        assert transformer.get_transformed_address("/test") == [1, 2, 3]
        assert transformer.get_buffer_contents("/test") == [[1, 2, 3]]

        transformer.add_message(sample("/test", [4, 5, 6], 2000))

        assert transformer.get_buffer_contents("/test") == [[4, 5, 6]]

    def test_no_flush_without_read(self, transformer):
        transformer.add_message(sample("/test", [1, 2, 3], 1000))
        transformer.add_message(sample("/test", [4, 5, 6], 2000))

        assert len(transformer.get_buffer_contents("/test")) == 2

    def test_addresses_independent(self, transformer):
        transformer.add_message(sample("/test1", [1, 2, 3], 1000))
        transformer.add_message(sample("/test2", [4, 5, 6], 2000))
        transformer.get_transformed_address("/test1")

        transformer.add_message(sample("/test1", [7, 8, 9], 3000))
        transformer.add_message(sample("/test2", [10, 11, 12], 4000))

        assert transformer.get_buffer_contents("/test1") == [[7, 8, 9]]
        assert transformer.get_buffer_contents("/test2") == [[4, 5, 6], [10, 11, 12]]

    def test_repeated_reads_same_value(self, transformer):
        transformer.add_message(sample("/test", [1, 2], 1000))

        first = transformer.get_transformed_address("/test")
        second = transformer.get_transformed_address("/test")

        assert first == second == [1, 2]

    def test_unknown_address_is_none(self, transformer):
        assert transformer.get_transformed_address("/missing") is None
        assert transformer.peek_transformed_address("/missing") is None
        assert transformer.get_buffer_contents("/missing") == []

    def test_peek_does_not_mark_read(self, transformer):
        transformer.add_message(sample("/test", [1], 1000))

        assert transformer.peek_transformed_address("/test") == [1]
        transformer.add_message(sample("/test", [2], 2000))

        assert transformer.get_buffer_contents("/test") == [[1], [2]]

    def test_get_addresses_first_seen_order(self, transformer):
        transformer.add_message(sample("/b", [1]))
        transformer.add_message(sample("/a", [1]))

        assert transformer.get_addresses() == ["/b", "/a"]

    def test_get_transformed_messages_marks_all_read(self, transformer):
        transformer.add_message(sample("/a", [1]))
        transformer.add_message(sample("/b", [2]))

        assert transformer.get_transformed_messages() == {"/a": [1], "/b": [2]}

        transformer.add_message(sample("/a", [3]))
        transformer.add_message(sample("/b", [4]))
        assert transformer.get_buffer_contents("/a") == [[3]]
        assert transformer.get_buffer_contents("/b") == [[4]]

    def test_get_transformed_messages_empty(self, transformer):
        assert transformer.get_transformed_messages() == {}

    def test_get_transformed_messages_skips_empty_buffers(self, transformer):
        transformer.add_message(sample("/a", [1]))
        transformer.buffers.clear("/a")

        assert transformer.get_transformed_messages() == {}

    def test_element_transform_applied_before_reduce(self):
        transformer = create_average_transformer()
        transformer.add_message(sample("/muse/elements/alpha_absolute", [0, 1, 0, 3], 1000))
        transformer.add_message(sample("/muse/elements/alpha_absolute", [4, 0, 0, 0], 2000))

        # element: [2.0], [4.0] -> average: [3.0]
        assert transformer.get_transformed_address("/muse/elements/alpha_absolute") == [3.0]
        # Raw buffer is not element-transformed
        assert transformer.get_buffer_contents("/muse/elements/alpha_absolute") == [
            [0, 1, 0, 3], [4, 0, 0, 0]
        ]

    def test_average_is_since_last_poll(self):
        transformer = create_average_transformer()
        transformer.add_message(sample("/muse/eeg", [10, 20], 1000))
        transformer.add_message(sample("/muse/eeg", [30, 40], 2000))
        assert transformer.get_transformed_address("/muse/eeg") == [20.0, 30.0]

        transformer.add_message(sample("/muse/eeg", [100, 200], 3000))
        assert transformer.get_transformed_address("/muse/eeg") == [100.0, 200.0]

    def test_last_value_factory(self):
        transformer = create_last_value_transformer()
        transformer.add_message(sample("/muse/eeg", [1, 2], 1000))
        transformer.add_message(sample("/muse/eeg", [3, 4], 2000))

        assert transformer.get_transformed_address("/muse/eeg") == [3, 4]

    def test_capabilities(self, transformer):
        assert isinstance(transformer, MessageTransformer)
        assert isinstance(transformer, Bufferable)
