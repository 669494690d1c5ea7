"""Helper functions and a decaying Bloom filter for duplicate detection."""

from __future__ import annotations

import hashlib
import math

__all__ = ["colon_delimited_hex", "DecayingBloomFilter"]

# Target false positive rate of each filter layer.
FALSE_POSITIVE_RATE = 0.00001


def colon_delimited_hex(data: bytes) -> str:
    """Format bytes as lower-case hex pairs separated by colons."""
    return ":".join(f"{byte:02x}" for byte in data)


class _BloomFilter:
    """A fixed-size Bloom filter sized for a number of elements and error rate."""

    def __init__(self, max_elements: int, false_positive_rate: float) -> None:
        ln2 = math.log(2)
        self._num_bits = max(
            8, math.ceil(-max_elements * math.log(false_positive_rate) / (ln2 * ln2))
        )
        self._num_hashes = max(1, round(self._num_bits / max_elements * ln2))
        self._bits = bytearray((self._num_bits + 7) // 8)

    def _positions(self, data: bytes):
        digest = hashlib.blake2b(data, digest_size=16).digest()
        h1 = int.from_bytes(digest[:8], "big")
        h2 = int.from_bytes(digest[8:], "big") | 1
        for i in range(self._num_hashes):
            yield (h1 + i * h2) % self._num_bits

    def __contains__(self, data: bytes) -> bool:
        return all(self._bits[pos >> 3] & (1 << (pos & 7)) for pos in self._positions(data))

    def add(self, data: bytes) -> None:
        for pos in self._positions(data):
            self._bits[pos >> 3] |= 1 << (pos & 7)


class DecayingBloomFilter:
    """A two-layer Bloom filter that can be decayed.

    It can be used continuously on real-time data while keeping a reasonable
    false positive rate for a fixed size. It produces no false negatives within
    two decay periods, and always forgets entries after that.
    """

    def __init__(self, max_elements: int) -> None:
        if max_elements < 1:
            raise ValueError("max_elements must be at least 1")
        self.max_elements = max_elements
        self._current = self._new_layer()
        self._previous = self._new_layer()

    def _new_layer(self) -> _BloomFilter:
        return _BloomFilter(self.max_elements, FALSE_POSITIVE_RATE)

    def feed(self, data: bytes) -> bool:
        """Return whether ``data`` is already present, inserting it if not."""
        data = bytes(data)
        if data in self._current or data in self._previous:
            return True
        self._current.add(data)
        return False

    def decay(self) -> None:
        """Age the filter: the current layer becomes the previous one."""
        self._previous = self._current
        self._current = self._new_layer()