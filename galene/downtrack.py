"""Per-track state of a downstream track: bitrate limits, receiver
statistics, round-trip time and simulcast/SVC layer selection."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace

from galene.rtptime import JIFFIES_PER_SEC

_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF

RECEIVER_REPORT_TIMEOUT = 30 * JIFFIES_PER_SEC

DEFAULT_MAX_BITRATE = 512 * 1024

MIN_LOSS_RATE = 9600
INIT_LOSS_RATE = 512 * 1000
MAX_LOSS_RATE = 1 << 30


def sadd(x: int, y: int) -> int:
    """Saturating addition of two unsigned 64-bit integers."""
    return min(x + y, _MASK64)


class Bitrate:
    """A bitrate with the time at which it was set."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bitrate = 0
        self._jiffies = 0

    def set(self, bitrate: int, now: int) -> None:
        with self._lock:
            self._bitrate = bitrate & _MASK64
            self._jiffies = now

    def get(self, now: int) -> int:
        """The bitrate, or 2^64-1 if it is stale."""
        with self._lock:
            ts, bitrate = self._jiffies, self._bitrate
        if now < ts or now - ts > RECEIVER_REPORT_TIMEOUT:
            return _MASK64
        return bitrate


class ReceiverStats:
    """Loss and jitter from the latest receiver report."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._loss = 0
        self._jitter = 0
        self._jiffies = 0

    def set(self, loss: int, jitter: int, now: int) -> None:
        with self._lock:
            self._loss = loss & 0xFF
            self._jitter = jitter & _MASK32
            self._jiffies = now

    def get(self, now: int) -> tuple[int, int]:
        """Loss and jitter, or (0, 0) if the report is stale."""
        with self._lock:
            ts, loss, jitter = self._jiffies, self._loss, self._jitter
        if now < ts or now > ts + RECEIVER_REPORT_TIMEOUT:
            return 0, 0
        return loss, jitter


@dataclass(frozen=True)
class LayerInfo:
    """Current, wanted and maximum spatial and temporal layers."""

    sid: int = 0
    wanted_sid: int = 0
    max_sid: int = 0
    tid: int = 0
    wanted_tid: int = 0
    max_tid: int = 0
    limit_sid: bool = False

    def pack(self) -> int:
        """Pack into a 32-bit word, four bits per layer number."""
        return (
            (self.sid & 0xF)
            | (self.wanted_sid & 0xF) << 4
            | (self.max_sid & 0xF) << 8
            | (1 << 12 if self.limit_sid else 0)
            | (self.tid & 0xF) << 16
            | (self.wanted_tid & 0xF) << 20
            | (self.max_tid & 0xF) << 24
        )

    @classmethod
    def unpack(cls, value: int) -> LayerInfo:
        return cls(
            sid=value & 0xF,
            wanted_sid=(value >> 4) & 0xF,
            max_sid=(value >> 8) & 0xF,
            limit_sid=bool((value >> 12) & 1),
            tid=(value >> 16) & 0xF,
            wanted_tid=(value >> 20) & 0xF,
            max_tid=(value >> 24) & 0xF,
        )


class DownTrackState:
    """Thread-safe state of a downstream track.

    Rates passed as actual_rate are the measured sending rate in bytes per
    second; all times are in jiffies.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rtt = 0
        self._sr = 0
        self._sr_ntp = 0
        self._remote_ntp = 0
        self._remote_rtp = 0
        self._layer_info = 0
        self.max_bitrate = Bitrate()
        self.max_remb_bitrate = Bitrate()
        self.stats = ReceiverStats()

    def set_time_offset(self, ntp: int, rtp: int) -> None:
        with self._lock:
            self._remote_ntp = ntp & _MASK64
            self._remote_rtp = rtp & _MASK32

    def time_offset(self) -> tuple[int, int]:
        with self._lock:
            return self._remote_ntp, self._remote_rtp

    def rtt(self) -> int:
        with self._lock:
            return self._rtt

    def set_rtt(self, rtt: int) -> None:
        with self._lock:
            self._rtt = rtt & _MASK64

    def sr_time(self) -> tuple[int, int]:
        """Local time and NTP time of the last sender report sent."""
        with self._lock:
            return self._sr, self._sr_ntp

    def set_sr_time(self, tm: int, ntp: int) -> None:
        with self._lock:
            self._sr = tm & _MASK64
            self._sr_ntp = ntp & _MASK64

    def layer_info(self) -> LayerInfo:
        with self._lock:
            return LayerInfo.unpack(self._layer_info)

    def set_layer_info(self, info: LayerInfo) -> None:
        with self._lock:
            self._layer_info = info.pack()

    def get_max_bitrate(self, now: int) -> tuple[int, int, int]:
        """The allowable bitrate and the current spatial and temporal layer."""
        layer = self.layer_info()
        rate = self.max_bitrate.get(now)
        if rate == _MASK64:
            rate = DEFAULT_MAX_BITRATE
        remb = self.max_remb_bitrate.get(now)
        if remb != 0 and remb < rate:
            rate = remb
        return rate, layer.sid, layer.tid

    def update_rate(self, loss: int, now: int, actual_rate: int) -> None:
        """Update the loss-based bitrate estimate from a fraction lost."""
        rate = self.max_bitrate.get(now)
        if rate < MIN_LOSS_RATE or rate > MAX_LOSS_RATE:
            # no recent feedback, reset
            rate = INIT_LOSS_RATE
        if loss < 5:
            # only increase if we are actually probing the bottleneck
            if 8 * actual_rate >= (rate * 3) // 4:
                rate = min(rate * 269 // 256, MAX_LOSS_RATE)
        elif loss > 25:
            rate = max(rate * (512 - loss) // 512, MIN_LOSS_RATE)
        # update unconditionally, to refresh the timestamp
        self.max_bitrate.set(rate, now)

    def adjust_layer(self, now: int, actual_rate: int) -> None:
        """Move the wanted layer one step towards the allowable bitrate,
        preferring temporal layers over spatial ones."""
        limit, _, _ = self.get_max_bitrate(now)
        rate = (actual_rate * 8) & _MASK64
        layer = self.layer_info()
        if rate < ((limit * 7) & _MASK64) // 8:
            if layer.limit_sid and layer.wanted_sid != 0:
                self.set_layer_info(replace(layer, wanted_sid=0))
            elif not layer.limit_sid and layer.sid < layer.max_sid:
                self.set_layer_info(replace(layer, wanted_sid=layer.sid + 1))
            elif layer.tid < layer.max_tid:
                self.set_layer_info(replace(layer, wanted_tid=layer.tid + 1))
        elif rate > ((limit * 3) & _MASK64) // 2:
            if layer.tid > 0:
                self.set_layer_info(replace(layer, wanted_tid=layer.tid - 1))
            elif layer.sid > 0:
                wanted = 0 if layer.limit_sid else layer.sid - 1
                self.set_layer_info(replace(layer, wanted_sid=wanted))

    def handle_report(
        self,
        fraction_lost: int,
        jitter: int,
        last_sender_report: int,
        delay: int,
        now: int,
        actual_rate: int,
    ) -> None:
        """Process a reception report about this track."""
        self.stats.set(fraction_lost, jitter, now)
        self.update_rate(fraction_lost, now, actual_rate)

        if last_sender_report == 0:
            return
        sr_time, sr_ntp = self.sr_time()
        if now < sr_time or now - sr_time > 8 * JIFFIES_PER_SEC:
            return
        if last_sender_report != (sr_ntp >> 16) & _MASK32:
            return
        delay_jiffies = delay * (JIFFIES_PER_SEC // 0x10000)
        elapsed = now - sr_time
        if delay_jiffies > elapsed:
            return
        rtt = elapsed - delay_jiffies
        old = self.rtt()
        self.set_rtt((3 * old + rtt) // 4 if old > 0 else rtt)