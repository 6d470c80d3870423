"""Stateful tokens as sent by clients: parsing, validation of newly
created tokens and application of edits to existing ones."""

from __future__ import annotations

import re
import secrets
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


class TokenError(ValueError):
    """A token request was rejected.

    kind is "error" or "not-authorised", as reported to the client.
    """

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


def _parse_rfc3339(text: str) -> datetime:
    m = _RFC3339.match(text)
    if m is None:
        raise TokenError("error", "bad time value")
    year, month, day, hour, minute, second, frac, zone = m.groups()
    micro = int((frac or "")[:6].ljust(6, "0"))
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * offset)
    try:
        return datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second), micro, tzinfo=tz,
        )
    except ValueError as e:
        raise TokenError("error", "bad time value") from e


def _string(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TokenError("error", "bad string value")
    return value


def _string_list(data: dict[str, Any], key: str) -> list[str] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(s, str) for s in value):
        raise TokenError("error", "bad string list")
    return list(value)


def _time(data: dict[str, Any], key: str, relative: bool) -> datetime | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return _parse_rfc3339(value)
    if relative and isinstance(value, (int, float)) and not isinstance(value, bool):
        # relative time in milliseconds
        return datetime.now(timezone.utc) + timedelta(milliseconds=int(value))
    raise TokenError("error", "bad time value")


@dataclass
class StatefulToken:
    """A token stored on the server."""

    token: str = ""
    group: str = ""
    username: str | None = None
    permissions: list[str] | None = None
    expires: datetime | None = None
    not_before: datetime | None = None
    issued_by: str | None = None
    issued_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatefulToken:
        """Build a token from its stored JSON representation."""
        if not isinstance(data, dict):
            raise TokenError("error", "bad token value")
        return cls(
            token=_string(data, "token") or "",
            group=_string(data, "group") or "",
            username=_string(data, "username"),
            permissions=_string_list(data, "permissions"),
            expires=_time(data, "expires", False),
            not_before=_time(data, "not-before", False),
            issued_by=_string(data, "issuedBy"),
            issued_at=_time(data, "issuedAt", False),
        )

    def clone(self) -> StatefulToken:
        """An independent copy of this token."""
        return StatefulToken(
            token=self.token,
            group=self.group,
            username=self.username,
            permissions=None if self.permissions is None else list(self.permissions),
            expires=self.expires,
            not_before=self.not_before,
            issued_by=self.issued_by,
            issued_at=self.issued_at,
        )


def parse_stateful_token(value: Any) -> StatefulToken:
    """Parse the value of a maketoken or edittoken action.

    Times are RFC 3339 strings or numbers of milliseconds from now.
    """
    if not isinstance(value, dict):
        raise TokenError("error", "bad token value")
    return StatefulToken(
        token=_string(value, "token") or "",
        username=_string(value, "username"),
        group=_string(value, "group") or "",
        permissions=_string_list(value, "permissions"),
        expires=_time(value, "expires", True),
        not_before=_time(value, "not-before", True),
    )


def check_new_token(
    tok: StatefulToken,
    group: str,
    permissions: Iterable[str] | None,
    username_exists: Callable[[str], bool],
) -> StatefulToken:
    """Validate a token requested by a client with the given permissions
    in the given group.

    Returns a copy with a freshly generated token and the issue time set.
    """
    perms = list(permissions or ())
    if "token" not in perms:
        raise TokenError("not-authorised", "not authorised")
    if tok.token != "":
        raise TokenError("error", "client specified token")
    if tok.group != group:
        raise TokenError("error", "wrong group in token")
    if tok.expires is None:
        raise TokenError("error", "token doesn't expire")
    if tok.username is not None and username_exists(tok.username):
        raise TokenError("error", "that username is taken")
    if any(p not in perms for p in tok.permissions or ()):
        raise TokenError("not-authorised", "not authorised")

    result = tok.clone()
    result.token = secrets.token_urlsafe(8)
    result.issued_at = datetime.now(timezone.utc)
    return result


def apply_token_edit(old: StatefulToken, edit: StatefulToken) -> StatefulToken:
    """Apply an edit to an existing token; only the validity period may
    be changed.  The old token is left untouched."""
    if (
        edit.group != ""
        or edit.username is not None
        or edit.permissions is not None
        or edit.issued_by is not None
        or edit.issued_at is not None
    ):
        raise TokenError("error", "this field cannot be edited")
    result = old.clone()
    if edit.expires is not None:
        result.expires = edit.expires
    if edit.not_before is not None:
        result.not_before = edit.not_before
    return result