"""Computations for upstream tracks: receiver reports, the bitrate to
request from the sender, the size of the packet cache and NACK batching."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from galene.downtrack import sadd
from galene.packetcache import Stats, to_bitmap
from galene.rtptime import JIFFIES_PER_SEC

_log = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF

MAX_NACK_PAIRS = 240
MAX_PACKET_CACHE = 1024
MIN_VIDEO_PACKET_CACHE = 128
MIN_AUDIO_PACKET_CACHE = 24


@dataclass(frozen=True)
class ReceptionReport:
    """One reception report block of an RTCP receiver report."""

    ssrc: int
    fraction_lost: int
    total_lost: int
    last_sequence_number: int
    jitter: int
    last_sender_report: int
    delay: int


def fraction_lost(stats: Stats) -> int:
    """Fraction of packets lost in the last interval, scaled to 0..255."""
    if stats.expected <= stats.received:
        return 0
    lost = stats.expected - stats.received
    return min(lost * 256 // stats.expected, 255)


def total_lost(stats: Stats) -> int:
    """Cumulative number of packets lost."""
    if stats.total_expected > stats.total_received:
        return stats.total_expected - stats.total_received
    return 0


def reception_report(
    stats: Stats,
    ssrc: int,
    jitter: int,
    sr_time: int,
    sr_ntp_time: int,
    now: int,
) -> ReceptionReport:
    """Build a reception report from cache statistics.

    sr_time is the local time in jiffies at which the last sender report
    was received (0 if none), sr_ntp_time its NTP timestamp, and now the
    current time in jiffies.  The delay is expressed in units of 1/65536
    second.
    """
    delay = 0
    if sr_time != 0:
        delay = ((now - sr_time) & _MASK64) // (JIFFIES_PER_SEC // 0x10000)
    return ReceptionReport(
        ssrc=ssrc & _MASK32,
        fraction_lost=fraction_lost(stats),
        total_lost=total_lost(stats) & _MASK32,
        last_sequence_number=stats.eseqno,
        jitter=jitter & _MASK32,
        last_sender_report=(sr_ntp_time >> 16) & _MASK32,
        delay=delay & _MASK32,
    )


def max_up_bitrate(downs: Iterable[tuple[int, int, int]], min_bitrate: int) -> int:
    """The bitrate to request from the sender of an upstream track.

    downs yields, for each downstream track, its allowable bitrate and its
    current spatial and temporal layer.
    """
    minrate = _MASK64
    maxrate = min_bitrate
    maxsid = 0
    maxtid = 0
    for rate, sid, tid in downs:
        maxsid = max(maxsid, sid)
        maxtid = max(maxtid, tid)
        rate = max(rate, min_bitrate)
        minrate = min(minrate, rate)
        maxrate = max(maxrate, rate)
    # lower spatial layers are assumed to take up 1/5 of the throughput
    if maxsid > 0:
        maxrate = sadd(maxrate, maxrate // 4)
    # each temporal layer is assumed to take half the throughput of the
    # next one, which leaves slack for a factor of 2^(layers-1)
    for _ in range(maxtid):
        minrate = sadd(minrate, minrate)
    return min(minrate, maxrate)


def min_packet_cache(is_video: bool) -> int:
    """The minimum number of packets cached for a track."""
    return MIN_VIDEO_PACKET_CACHE if is_video else MIN_AUDIO_PACKET_CACHE


def retransmission_timeout(rtt: int, jitter: int, clockrate: int) -> int:
    """Retransmission timeout in jiffies from an RTT in jiffies and a
    jitter in units of the codec clock rate."""
    jitter_jiffies = jitter * (JIFFIES_PER_SEC // clockrate)
    return rtt + 4 * jitter_jiffies


def cache_size(rate: int, max_rto: int, is_video: bool) -> int:
    """Number of packets to cache, given a packet rate per second and the
    largest retransmission timeout in jiffies."""
    packets = rate * max_rto * 4 // JIFFIES_PER_SEC
    return min(max(packets, min_packet_cache(is_video)), MAX_PACKET_CACHE)


def nack_pairs(seqnos: list[int]) -> list[tuple[int, int]]:
    """Pack a sorted list of seqnos into NACK pairs of first seqno and
    bitmap, at most as many as fit in one packet."""
    pairs: list[tuple[int, int]] = []
    remain = list(seqnos)
    while remain:
        if len(pairs) >= MAX_NACK_PAIRS:
            _log.warning("NACK: packet overflow")
            break
        first, bitmap, remain = to_bitmap(remain)
        pairs.append((first, bitmap))
    return pairs