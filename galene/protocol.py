"""Messages exchanged with web clients over the websocket, and the mapping
of errors to user-visible messages and websocket close frames."""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from typing import Any

PROTOCOL_VERSION = "2"

CLOSE_NORMAL_CLOSURE = 1000
CLOSE_PROTOCOL_ERROR = 1002
CLOSE_NO_STATUS_RECEIVED = 1005
CLOSE_INTERNAL_SERVER_ERR = 1011


class ProtocolError(Exception):
    """The client violated the protocol."""


class UserError(Exception):
    """An error that is reported to the user."""


class KickError(Exception):
    """The client has been kicked out of its group."""

    def __init__(
        self, id: str = "", username: str | None = None, message: str = ""
    ) -> None:
        super().__init__(message or "kicked out")
        self.id = id
        self.username = username
        self.message = message


_STR = "str"
_BOOL = "bool"
_STRLIST = "strlist"
_OPTSTR = "optstr"
_MAP = "map"
_OBJ = "obj"
_ANY = "any"

_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("type", "type", _STR),
    ("version", "version", _STRLIST),
    ("kind", "kind", _STR),
    ("error", "error", _STR),
    ("id", "id", _STR),
    ("replace", "replace", _STR),
    ("source", "source", _STR),
    ("dest", "dest", _STR),
    ("username", "username", _OPTSTR),
    ("password", "password", _STR),
    ("token", "token", _STR),
    ("privileged", "privileged", _BOOL),
    ("permissions", "permissions", _STRLIST),
    ("status", "status", _OBJ),
    ("data", "data", _MAP),
    ("group", "group", _STR),
    ("value", "value", _ANY),
    ("noecho", "noecho", _BOOL),
    ("time", "time", _STR),
    ("sdp", "sdp", _STR),
    ("candidate", "candidate", _OBJ),
    ("label", "label", _STR),
    ("request", "request", _ANY),
    ("rtc_configuration", "rtcConfiguration", _OBJ),
)


def _omitted(kind: str, value: Any) -> bool:
    if kind == _STR:
        return value == ""
    if kind in (_BOOL, _STRLIST, _MAP):
        return not value
    return value is None


def _parse(kind: str, key: str, value: Any) -> Any:
    if kind == _ANY:
        return value
    if kind == _STR:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError(f"{key}: expected a string")
        return value
    if kind == _BOOL:
        if value is None:
            return False
        if not isinstance(value, bool):
            raise ValueError(f"{key}: expected a boolean")
        return value
    if value is None:
        return None
    if kind == _OPTSTR:
        if not isinstance(value, str):
            raise ValueError(f"{key}: expected a string")
        return value
    if kind == _STRLIST:
        if not isinstance(value, list) or not all(
            isinstance(s, str) for s in value
        ):
            raise ValueError(f"{key}: expected a list of strings")
        return list(value)
    if not isinstance(value, dict):
        raise ValueError(f"{key}: expected an object")
    return dict(value)


@dataclass
class ClientMessage:
    """A message of the client protocol."""

    type: str = ""
    version: list[str] | None = None
    kind: str = ""
    error: str = ""
    id: str = ""
    replace: str = ""
    source: str = ""
    dest: str = ""
    username: str | None = None
    password: str = ""
    token: str = ""
    privileged: bool = False
    permissions: list[str] | None = None
    status: dict[str, Any] | None = None
    data: dict[str, Any] | None = None
    group: str = ""
    value: Any = None
    noecho: bool = False
    time: str = ""
    sdp: str = ""
    candidate: dict[str, Any] | None = None
    label: str = ""
    request: Any = None
    rtc_configuration: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """The wire representation, with empty fields left out."""
        result: dict[str, Any] = {}
        for attr, key, kind in _FIELDS:
            value = getattr(self, attr)
            if key != "type" and _omitted(kind, value):
                continue
            if isinstance(value, list):
                value = list(value)
            result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientMessage:
        """Build a message from its wire representation."""
        if not isinstance(data, dict):
            raise ValueError("message is not an object")
        return cls(
            **{
                attr: _parse(kind, key, data.get(key))
                for attr, key, kind in _FIELDS
            }
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str | bytes) -> ClientMessage:
        return cls.from_dict(json.loads(text))


def error_message(client_id: str, err: BaseException | None) -> ClientMessage | None:
    """The message that reports err to the user, or None if it is not
    meant for the user."""
    if isinstance(err, UserError):
        return ClientMessage(
            type="usermessage",
            kind="error",
            dest=client_id,
            privileged=True,
            value=str(err),
        )
    if isinstance(err, KickError):
        return ClientMessage(
            type="usermessage",
            kind="kicked",
            id=err.id,
            username=err.username,
            dest=client_id,
            privileged=True,
            value=err.message or "you have been kicked out",
        )
    return None


def close_code(err: BaseException | None) -> int:
    """The websocket close code for a connection terminated by err.

    A ConnectionError stands for the peer having closed the websocket.
    """
    if isinstance(err, ProtocolError):
        return CLOSE_PROTOCOL_ERROR
    if isinstance(err, (UserError, KickError, ConnectionError)):
        return CLOSE_NORMAL_CLOSURE
    return CLOSE_INTERNAL_SERVER_ERR


def format_close_payload(code: int, text: str) -> bytes:
    """The payload of a websocket close frame."""
    if code == CLOSE_NO_STATUS_RECEIVED:
        return b""
    return struct.pack(">H", code) + text.encode("utf-8")


def close_message(
    client_id: str, err: BaseException | None
) -> tuple[ClientMessage | None, bytes]:
    """The last message to send to the client, if any, and the payload of
    the close frame for a connection terminated by err."""
    message: ClientMessage | None = None
    text = ""
    if isinstance(err, ProtocolError):
        message = ClientMessage(
            type="usermessage",
            kind="error",
            dest=client_id,
            privileged=True,
            value=str(err),
        )
        text = str(err)
    elif isinstance(err, (UserError, KickError)):
        message = error_message(client_id, err)
        text = str(err)
    return message, format_close_payload(close_code(err), text)