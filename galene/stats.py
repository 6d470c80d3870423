"""Connection statistics as reported to administrators.

Durations are held as integer nanoseconds and serialised as floating-point
milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

NANOSECONDS_PER_MILLISECOND = 1_000_000

_LAYER_KEYS = (
    ("sid", "sid"),
    ("max_sid", "maxSid"),
    ("tid", "tid"),
    ("max_tid", "maxTid"),
)


def _ns_to_ms(d: int) -> float:
    return d / NANOSECONDS_PER_MILLISECOND


def _ms_to_ns(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{key}: expected a number, got {value!r}")
    return int(value * NANOSECONDS_PER_MILLISECOND)


@dataclass
class Track:
    """Statistics of a single track."""

    bitrate: int = 0
    loss: float = 0.0
    max_bitrate: int = 0
    rtt: int = 0
    jitter: int = 0
    sid: int | None = None
    max_sid: int | None = None
    tid: int | None = None
    max_tid: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for attr, key in _LAYER_KEYS:
            value = getattr(self, attr)
            if value is not None:
                result[key] = value
        result["bitrate"] = self.bitrate
        if self.max_bitrate:
            result["maxBitrate"] = self.max_bitrate
        result["loss"] = self.loss
        if self.rtt:
            result["rtt"] = _ns_to_ms(self.rtt)
        if self.jitter:
            result["jitter"] = _ns_to_ms(self.jitter)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Track:
        layers = {attr: data.get(key) for attr, key in _LAYER_KEYS}
        rtt = data.get("rtt")
        jitter = data.get("jitter")
        return cls(
            bitrate=int(data.get("bitrate", 0)),
            loss=float(data.get("loss", 0.0)),
            max_bitrate=int(data.get("maxBitrate", 0)),
            rtt=0 if rtt is None else _ms_to_ns(rtt, "rtt"),
            jitter=0 if jitter is None else _ms_to_ns(jitter, "jitter"),
            **layers,
        )


@dataclass
class Conn:
    """Statistics of a connection and its tracks."""

    id: str
    tracks: list[Track] = field(default_factory=list)
    max_bitrate: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id}
        if self.max_bitrate:
            result["maxBitrate"] = self.max_bitrate
        result["tracks"] = [t.to_dict() for t in self.tracks]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conn:
        return cls(
            id=data.get("id", ""),
            tracks=[Track.from_dict(t) for t in data.get("tracks") or []],
            max_bitrate=int(data.get("maxBitrate", 0)),
        )


@dataclass
class Client:
    """Statistics of a client's up and down connections."""

    id: str
    up: list[Conn] = field(default_factory=list)
    down: list[Conn] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id}
        if self.up:
            result["up"] = [c.to_dict() for c in self.up]
        if self.down:
            result["down"] = [c.to_dict() for c in self.down]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Client:
        return cls(
            id=data.get("id", ""),
            up=[Conn.from_dict(c) for c in data.get("up") or []],
            down=[Conn.from_dict(c) for c in data.get("down") or []],
        )


@dataclass
class GroupStats:
    """Statistics of all clients in a group."""

    name: str
    clients: list[Client] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name}
        if self.clients:
            result["clients"] = [c.to_dict() for c in self.clients]
        return result


def sort_groups(groups: list[GroupStats]) -> list[GroupStats]:
    """Return the groups sorted by name, each with its clients sorted by id."""
    return sorted(
        (
            GroupStats(name=g.name, clients=sorted(g.clients, key=lambda c: c.id))
            for g in groups
        ),
        key=lambda g: g.name,
    )