"""Remapping of sequence numbers and picture ids around dropped packets."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass

_MASK16 = 0xFFFF
_MAX_ENTRIES = 128
_WINDOW = 8 * 1024


def compare(s1: int, s2: int) -> int:
    """Compare two sequence numbers modulo 2^16."""
    if s1 == s2:
        return 0
    if (s2 - s1) & 0x8000:
        return 1
    return -1


@dataclass
class _Entry:
    first: int
    count: int
    delta: int
    pid_delta: int


class PacketMap:
    """Maps incoming seqnos to outgoing ones, hiding dropped packets."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset()

    def _reset(self) -> None:
        self._next = 0
        self._next_pid = 0
        self._delta = 0
        self._pid_delta = 0
        self._last_entry = 0
        self._entries: list[_Entry] | None = None

    def _advance(self, seqno: int, pid: int) -> None:
        self._next = (seqno + 1) & _MASK16
        self._next_pid = pid & _MASK16

    def map(self, seqno: int, pid: int) -> tuple[int, int] | None:
        """Map a seqno, recording the mapping if needed.

        Returns the target seqno and the pid delta to apply, or None if the
        seqno cannot be mapped.
        """
        seqno &= _MASK16
        with self._lock:
            if self._delta == 0 and self._entries is None:
                if (
                    compare(self._next, seqno) <= 0
                    or ((self._next - seqno) & _MASK16) > _WINDOW
                ):
                    self._advance(seqno, pid)
                return seqno, 0

            if compare(self._next, seqno) <= 0:
                if ((seqno - self._next) & _MASK16) > _WINDOW:
                    self._reset()
                    self._advance(seqno, pid)
                    return seqno, 0
                self._add_mapping(seqno, self._delta, self._pid_delta)
                self._advance(seqno, pid)
                return (seqno + self._delta) & _MASK16, self._pid_delta

            if ((self._next - seqno) & _MASK16) > _WINDOW:
                self._reset()
                self._advance(seqno, pid)
                return seqno, 0

            return self._direct(seqno)

    def _add_mapping(self, seqno: int, delta: int, pid_delta: int) -> None:
        if not self._entries:
            return

        last = self._entries[self._last_entry]
        if delta == last.delta and pid_delta == last.pid_delta:
            last.count = (seqno - last.first + 1) & _MASK16
            return

        first = seqno
        d = (last.delta - delta) & _MASK16
        # widen the interval over missing values, keeping targets disjoint
        if d < _WINDOW:
            candidate = (last.first + last.count + d) & _MASK16
            if compare(candidate, seqno) < 0:
                first = candidate
        entry = _Entry(
            first=first,
            count=(seqno - first + 1) & _MASK16,
            delta=delta,
            pid_delta=pid_delta,
        )

        if len(self._entries) < _MAX_ENTRIES:
            self._entries.append(entry)
            self._last_entry = len(self._entries) - 1
            return

        j = (self._last_entry + 1) % _MAX_ENTRIES
        self._entries[j] = entry
        self._last_entry = j

    def _newest_first(self) -> Iterator[_Entry]:
        entries = self._entries or []
        last = self._last_entry
        yield from entries[last::-1]
        yield from entries[:last:-1]

    def _direct(self, seqno: int) -> tuple[int, int] | None:
        for entry in self._newest_first():
            if compare(seqno, entry.first) >= 0:
                if compare(seqno, (entry.first + entry.count) & _MASK16) < 0:
                    return (seqno + entry.delta) & _MASK16, entry.pid_delta
                return None
        return None

    def lookup(self, seqno: int) -> tuple[int, int] | None:
        """Map a seqno using existing mappings only."""
        with self._lock:
            return self._direct(seqno & _MASK16)

    def reverse(self, seqno: int) -> tuple[int, int] | None:
        """Map a target seqno back to the original one.

        Returns the original seqno and the pid delta, or None.
        """
        seqno &= _MASK16
        with self._lock:
            if self._entries is None:
                if self._delta == 0:
                    return seqno, 0
                return None

            for entry in self._newest_first():
                first = (entry.first + entry.delta) & _MASK16
                if compare(seqno, first) >= 0:
                    if compare(seqno, (first + entry.count) & _MASK16) < 0:
                        return (seqno - entry.delta) & _MASK16, entry.pid_delta
                    return None
            return None

    def drop(self, seqno: int, pid: int) -> bool:
        """Record a dropped packet; return True if it is safe to drop."""
        seqno &= _MASK16
        with self._lock:
            if seqno != self._next:
                return False

            if not self._entries:
                self._entries = [
                    _Entry(
                        first=(seqno - _WINDOW) & _MASK16,
                        count=_WINDOW,
                        delta=0,
                        pid_delta=0,
                    )
                ]

            self._pid_delta = (self._pid_delta + pid - self._next_pid) & _MASK16
            self._next_pid = pid & _MASK16
            self._delta = (self._delta - 1) & _MASK16
            self._next = (seqno + 1) & _MASK16
            return True

    @property
    def delta(self) -> int:
        """Current seqno delta, modulo 2^16."""
        with self._lock:
            return self._delta

    @property
    def pid_delta(self) -> int:
        """Current picture id delta, modulo 2^16."""
        with self._lock:
            return self._pid_delta

    @property
    def entry_count(self) -> int:
        """Number of recorded mapping intervals."""
        with self._lock:
            return len(self._entries or [])