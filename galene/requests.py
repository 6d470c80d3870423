"""Client requests: which tracks a client wants, permission changes and
the small value formats carried by group and user actions."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from galene.protocol import UserError

_log = logging.getLogger(__name__)

KIND_AUDIO = "audio"
KIND_VIDEO = "video"


@dataclass(frozen=True)
class UpTrackInfo:
    """What is needed of an upstream track to choose among tracks."""

    kind: str
    label: str = ""


def member(v: str, items: Iterable[str] | None) -> bool:
    """True if v is one of items."""
    return v in (items or ())


def remove(v: str, items: Iterable[str] | None) -> list[str]:
    """A copy of items without the first occurrence of v."""
    result = list(items or ())
    if v in result:
        result.remove(v)
    return result


def addnew(v: str, items: Iterable[str] | None) -> list[str]:
    """A copy of items with v appended unless already present."""
    result = list(items or ())
    if v not in result:
        result.append(v)
    return result


def to_string_array(value: Any) -> list[str] | None:
    """Check that a decoded JSON value is a list of strings."""
    if value is None:
        return None
    if not isinstance(value, list):
        raise TypeError("bad type")
    if not all(isinstance(s, str) for s in value):
        raise TypeError("bad type")
    return list(value)


def parse_requested(value: Any) -> dict[str, list[str] | None] | None:
    """Parse the value of a request message: a map from labels to lists
    of requested track kinds."""
    if value is None:
        return None
    if not isinstance(value, dict):
        raise TypeError("bad type")
    return {k: to_string_array(v) for k, v in value.items()}


def requested_tracks(
    requested: Sequence[str] | None, tracks: Sequence[Any]
) -> tuple[list[Any], bool]:
    """Select the tracks matching a request.

    Returns the selected tracks and whether the spatial layer must be
    limited to the lowest one.
    """
    if not requested:
        return [], False

    audio = video = video_low = False
    for s in requested:
        if s == "audio":
            audio = True
        elif s == "video":
            video = True
        elif s == "video-low":
            video_low = True
        else:
            _log.warning("client requested unknown value %s", s)

    def of_kind(kind: str) -> list[Any]:
        return [t for t in tracks if t.kind == kind]

    selected: list[Any] = []
    limit_sid = False
    if audio:
        audios = of_kind(KIND_AUDIO)
        if audios:
            selected.append(audios[0])
    if video:
        videos = of_kind(KIND_VIDEO)
        if videos:
            selected.append(videos[0])
    elif video_low:
        videos = of_kind(KIND_VIDEO)
        if videos:
            selected.append(videos[-1])
        if len(videos) < 2:
            limit_sid = True
    return selected, limit_sid


def apply_permission(
    permissions: Iterable[str] | None, perm: str, allow_recording: bool
) -> list[str]:
    """The permissions that result from a user action such as op or shutup."""
    if perm == "op":
        result = addnew("op", permissions)
        if allow_recording:
            result = addnew("record", result)
        return result
    if perm == "unop":
        return remove("record", remove("op", permissions))
    if perm == "present":
        return addnew("present", permissions)
    if perm == "unpresent":
        return remove("present", permissions)
    if perm == "shutup":
        return remove("message", permissions)
    if perm == "unshutup":
        return addnew("message", permissions)
    raise UserError("unknown permission")


def parse_clearchat_value(value: Any) -> tuple[str, str]:
    """Parse the value of a clearchat action into a message id and a user
    id; both are empty to clear the whole history."""
    if value is None:
        return "", ""
    if not isinstance(value, dict):
        raise UserError("bad value in clearchat")
    message_id = value.get("id")
    user_id = value.get("userId")
    message_id = message_id if isinstance(message_id, str) else ""
    user_id = user_id if isinstance(user_id, str) else ""
    if user_id == "" and message_id != "":
        raise UserError("bad value in clearchat")
    return message_id, user_id


def format_subgroups(subgroups: Iterable[tuple[str, int]]) -> str:
    """Describe subgroups and their client counts, one per line."""
    return "".join(
        f"{name} ({clients} client{'s' if clients > 1 else ''})\n"
        for name, clients in subgroups
    )


def merge_user_data(
    data: Mapping[str, Any] | None, update: Any
) -> dict[str, Any]:
    """Merge a setdata update into a user's data; null values delete keys."""
    if not isinstance(update, dict):
        raise UserError("Bad value in setdata")
    result = dict(data or {})
    for key, value in update.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = value
    return result