"""Cache of recently received RTP packets, with loss statistics.

The cache keeps a ring of recent packets, remembers the last keyframe and
tracks the counters needed to build RTCP receiver reports.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

# The maximum size of packets stored in the cache.
BUF_SIZE = 1504

_MASK16 = 0xFFFF
_MASK32 = 0xFFFFFFFF
_MAX_CAPACITY = 0xFFFF


def _compare(s1: int, s2: int) -> int:
    """Compare two sequence numbers modulo 2^16."""
    if s1 == s2:
        return 0
    if (s2 - s1) & 0x8000:
        return 1
    return -1


def _seqno_invalid(seqno: int, reference: int) -> bool:
    """True if seqno is unreasonably far in the past relative to reference."""
    if _compare(reference, seqno) < 0:
        return False
    return ((reference - seqno) & _MASK16) > 0x100


def _trailing_zeros32(x: int) -> int:
    x &= _MASK32
    if x == 0:
        return 32
    return (x & -x).bit_length() - 1


def _check_capacity(capacity: int) -> None:
    if not 1 <= capacity <= _MAX_CAPACITY:
        raise ValueError(f"cache capacity out of range: {capacity}")


@dataclass(frozen=True)
class _Entry:
    seqno: int = 0
    length: int = 0
    marker: bool = False
    timestamp: int = 0
    data: bytes = b""

    @property
    def empty(self) -> bool:
        return self.length == 0 and not self.marker


_EMPTY = _Entry()


class _LossBitmap:
    """Recent loss history: bit i set means first + i was received."""

    def __init__(self) -> None:
        self.valid = False
        self.first = 0
        self.bits = 0

    def set(self, seqno: int) -> None:
        if not self.valid or _seqno_invalid(seqno, self.first):
            self.first = seqno
            self.bits = 1
            self.valid = True
            return

        if _compare(self.first, seqno) > 0:
            return

        if ((seqno - self.first) & _MASK16) >= 32:
            shift = (seqno - self.first - 31) & _MASK16
            self.bits >>= shift
            self.first = (self.first + shift) & _MASK16

        if self.bits & 1:
            ones = _trailing_zeros32(~self.bits)
            self.bits >>= ones
            self.first = (self.first + ones) & _MASK16

        offset = (seqno - self.first) & _MASK16
        if offset < 32:
            self.bits |= 1 << offset
        self.bits &= _MASK32

    def get(self, next_seqno: int) -> tuple[bool, int, int]:
        first = self.first
        if _compare(first, next_seqno) >= 0:
            return False, first, 0
        count = min((next_seqno - first) & _MASK16, 17)
        bm = (~self.bits & _MASK32) & ((1 << count) - 1)
        self.bits >>= count
        self.first = (self.first + count) & _MASK16

        if bm == 0:
            return False, first, 0

        if bm & 1 == 0:
            zeros = _trailing_zeros32(bm)
            bm >>= zeros
            first = (first + zeros) & _MASK16

        return True, first, (bm >> 1) & _MASK16


@dataclass(frozen=True)
class Stats:
    """Reception statistics of a cache."""

    received: int
    total_received: int
    expected: int
    total_expected: int
    eseqno: int


class Cache:
    """A thread-safe ring of recent packets with loss accounting."""

    def __init__(self, capacity: int) -> None:
        _check_capacity(capacity)
        self._lock = threading.Lock()
        self._last = 0
        self._cycle = 0
        self._last_valid = False
        self._expected = 0
        self._total_expected = 0
        self._received = 0
        self._total_received = 0
        self._keyframe = 0
        self._keyframe_valid = False
        self._bitmap = _LossBitmap()
        self._tail = 0
        self._entries: list[_Entry] = [_EMPTY] * capacity

    def store(
        self,
        seqno: int,
        timestamp: int,
        keyframe: bool,
        marker: bool,
        buf: bytes,
    ) -> tuple[int, int]:
        """Store a packet; return the first seqno of the loss bitmap and the
        index at which the packet was stored."""
        seqno &= _MASK16
        with self._lock:
            if not self._last_valid or _seqno_invalid(seqno, self._last):
                self._last = seqno
                self._last_valid = True
                self._expected = (self._expected + 1) & _MASK32
                self._received = (self._received + 1) & _MASK32
            else:
                cmp = _compare(self._last, seqno)
                if cmp < 0:
                    self._received = (self._received + 1) & _MASK32
                    self._expected = (
                        self._expected + ((seqno - self._last) & _MASK16)
                    ) & _MASK32
                    if seqno < self._last:
                        self._cycle = (self._cycle + 1) & _MASK16
                    self._last = seqno
                    if self._keyframe_valid and _compare(self._keyframe, seqno) > 0:
                        self._keyframe_valid = False
                elif cmp > 0 and self._received < self._expected:
                    self._received += 1
            self._bitmap.set(seqno)

            if keyframe:
                self._keyframe = seqno
                self._keyframe_valid = True

            index = self._tail
            data = bytes(buf[:BUF_SIZE])
            self._entries[index] = _Entry(
                seqno=seqno,
                length=len(data),
                marker=bool(marker),
                timestamp=timestamp & _MASK32,
                data=data,
            )
            self._tail = (index + 1) % len(self._entries)
            return self._bitmap.first, index

    def bitmap_get(self, next_seqno: int) -> tuple[bool, int, int]:
        """Shift up to 17 bits out of the loss bitmap.

        Returns whether any bit was missing, the seqno of the first missing
        packet, and a bitmap of further missing packets after it.
        """
        with self._lock:
            return self._bitmap.get(next_seqno & _MASK16)

    def loss_bitmap(self) -> tuple[int, int]:
        """The first seqno covered by the loss bitmap and the bitmap itself."""
        with self._lock:
            return self._bitmap.first, self._bitmap.bits

    def expect(self, n: int) -> None:
        """Record that n additional packets are expected."""
        if n <= 0:
            return
        with self._lock:
            self._expected = (self._expected + n) & _MASK32

    def _find(self, seqno: int) -> _Entry | None:
        seqno &= _MASK16
        return next(
            (e for e in self._entries if not e.empty and e.seqno == seqno),
            None,
        )

    def get(self, seqno: int) -> bytes | None:
        """The contents of a cached packet, or None if it is not cached."""
        with self._lock:
            entry = self._find(seqno)
        if entry is None or entry.length == 0:
            return None
        return entry.data

    def get_length(self, seqno: int) -> int:
        """The size of a cached packet, or 0 if it is not cached."""
        with self._lock:
            entry = self._find(seqno)
        return 0 if entry is None else entry.length

    def get_at(self, seqno: int, index: int) -> bytes | None:
        """Retrieve a packet assuming it was stored at the given index."""
        with self._lock:
            if not 0 <= index < len(self._entries):
                return None
            entry = self._entries[index]
        if entry.seqno != (seqno & _MASK16) or entry.length == 0:
            return None
        return entry.data

    def last(self) -> int | None:
        """The most recent seqno seen, or None if nothing was stored."""
        with self._lock:
            return self._last if self._last_valid else None

    def keyframe(self) -> int | None:
        """The seqno of the last keyframe seen, or None."""
        with self._lock:
            return self._keyframe if self._keyframe_valid else None

    @property
    def capacity(self) -> int:
        with self._lock:
            return len(self._entries)

    def slot_seqnos(self) -> list[int]:
        """The seqno held by each slot of the ring, in slot order."""
        with self._lock:
            return [e.seqno for e in self._entries]

    def _resize(self, capacity: int) -> None:
        old = self._entries
        size = len(old)
        if size == capacity:
            return
        _check_capacity(capacity)
        tail = self._tail
        entries = [_EMPTY] * capacity
        if capacity > size:
            entries[:tail] = old[:tail]
            entries[tail + capacity - size:] = old[tail:]
        elif capacity > tail:
            entries[:tail] = old[:tail]
            entries[tail:] = old[tail + size - capacity:]
        else:
            # indices of recent packets become invalid
            entries[:capacity] = old[tail - capacity:tail]
            self._tail = 0
        self._entries = entries

    def resize(self, capacity: int) -> None:
        """Resize the cache; this may invalidate indices of recent packets."""
        with self._lock:
            self._resize(capacity)

    def resize_cond(self, capacity: int) -> bool:
        """Like resize, but only when worthwhile and without invalidating
        recent indices.  Returns True if the cache was resized."""
        with self._lock:
            current = len(self._entries)
            if capacity * 3 // 4 <= current < capacity * 2:
                return False
            if capacity < current and self._tail > capacity:
                return False
            self._resize(capacity)
            return True

    def get_stats(self, reset: bool) -> Stats:
        """Return reception statistics, resetting the interval counters if
        reset is true."""
        with self._lock:
            stats = Stats(
                received=self._received,
                total_received=(self._total_received + self._received) & _MASK32,
                expected=self._expected,
                total_expected=(self._total_expected + self._expected) & _MASK32,
                eseqno=((self._cycle << 16) | self._last) & _MASK32,
            )
            if reset:
                self._total_expected = stats.total_expected
                self._expected = 0
                self._total_received = stats.total_received
                self._received = 0
            return stats


def to_bitmap(seqnos: list[int]) -> tuple[int, int, list[int]]:
    """Cover a prefix of a sorted, non-empty list of seqnos with a NACK
    bitmap.  Returns the first seqno, the bitmap and the uncovered rest."""
    if not seqnos:
        raise ValueError("to_bitmap needs at least one seqno")
    first = seqnos[0] & _MASK16
    bitmap = 0
    remain = list(seqnos[1:])
    while remain:
        delta = (remain[0] - first - 1) & _MASK16
        if delta >= 16:
            break
        bitmap |= 1 << delta
        remain.pop(0)
    return first, bitmap, remain


def nack_pair_seqnos(first: int, bitmap: int) -> list[int]:
    """The seqnos designated by a NACK pair."""
    return [first & _MASK16] + [
        (first + i + 1) & _MASK16 for i in range(16) if (bitmap >> i) & 1
    ]