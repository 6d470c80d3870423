import json
from datetime import datetime, timedelta, timezone

import pytest

from galene.tokens import (
    StatefulToken,
    TokenError,
    apply_token_edit,
    check_new_token,
    parse_stateful_token,
)

TOKENS = [
    """{
        "token": "a",
        "group": "g",
        "username": "u",
        "permissions":["present"],
        "expires": "2023-05-03T20:24:47.616624532+02:00"
    }""",
    """{
        "token": "a",
        "group": "g"
    }""",
    """{
        "token": "a",
        "group": "g",
        "username":""
    }""",
]


@pytest.mark.parametrize("text", TOKENS)
def test_parse_matches_stored_representation(text):
    t1 = StatefulToken.from_dict(json.loads(text))
    t2 = parse_stateful_token(json.loads(text))
    assert t1 == t2


def test_parse_fields():
    tok = parse_stateful_token(json.loads(TOKENS[0]))
    assert tok.token == "a"
    assert tok.group == "g"
    assert tok.username == "u"
    assert tok.permissions == ["present"]
    tz = timezone(timedelta(hours=2))
    assert tok.expires == datetime(2023, 5, 3, 20, 24, 47, 616624, tzinfo=tz)
    assert tok.not_before is None


def test_empty_username_is_not_absent():
    assert parse_stateful_token(json.loads(TOKENS[2])).username == ""
    assert parse_stateful_token(json.loads(TOKENS[1])).username is None


def test_utc_suffix():
    tok = parse_stateful_token({"expires": "2024-01-02T03:04:05Z"})
    assert tok.expires == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_relative_time():
    before = datetime.now(timezone.utc)
    tok = parse_stateful_token({"expires": 60000})
    after = datetime.now(timezone.utc)
    assert before + timedelta(seconds=60) <= tok.expires
    assert tok.expires <= after + timedelta(seconds=60)


def test_from_dict_rejects_relative_time():
    with pytest.raises(TokenError):
        StatefulToken.from_dict({"expires": 1000})


@pytest.mark.parametrize(
    "value, message",
    [
        (None, "bad token value"),
        ("x", "bad token value"),
        ({"token": 3}, "bad string value"),
        ({"permissions": "present"}, "bad string list"),
        ({"permissions": ["present", 1]}, "bad string list"),
        ({"expires": "yesterday"}, "bad time value"),
        ({"expires": True}, "bad time value"),
        ({"not-before": ["x"]}, "bad time value"),
    ],
)
def test_parse_errors(value, message):
    with pytest.raises(TokenError) as info:
        parse_stateful_token(value)
    assert info.value.message == message
    assert info.value.kind == "error"


def test_clone_is_independent():
    tok = StatefulToken(token="a", group="g", permissions=["present"])
    copy = tok.clone()
    copy.permissions.append("op")
    assert tok.permissions == ["present"]
    assert copy == StatefulToken(token="a", group="g", permissions=["present", "op"])


def _new(**kwargs):
    base = dict(
        group="g",
        expires=datetime(2030, 1, 1, tzinfo=timezone.utc),
        permissions=["present"],
    )
    base.update(kwargs)
    return StatefulToken(**base)


def _never(name):
    return False


def test_check_new_token_success():
    tok = _new(username="bob")
    result = check_new_token(tok, "g", ["op", "token", "present"], _never)
    assert len(result.token) == 11
    assert result.issued_at is not None
    assert result.group == "g"
    assert result.username == "bob"
    assert tok.token == ""


def test_check_new_token_unique():
    perms = ["token", "present"]
    a = check_new_token(_new(), "g", perms, _never)
    b = check_new_token(_new(), "g", perms, _never)
    assert a.token != b.token


@pytest.mark.parametrize(
    "tok, perms, kind, message",
    [
        (_new(), ["present"], "not-authorised", "not authorised"),
        (_new(token="token"), ["token", "present"], "error", "client specified token"),
        (_new(group="h"), ["token", "present"], "error", "wrong group in token"),
        (_new(expires=None), ["token", "present"], "error", "token doesn't expire"),
        (_new(username="taken"), ["token", "present"], "error", "that username is taken"),
        (_new(permissions=["op"]), ["token", "present"], "not-authorised", "not authorised"),
    ],
)
def test_check_new_token_errors(tok, perms, kind, message):
    with pytest.raises(TokenError) as info:
        check_new_token(tok, "g", perms, lambda name: name == "taken")
    assert info.value.kind == kind
    assert str(info.value) == message


def test_apply_token_edit():
    old = StatefulToken(
        token="a",
        group="g",
        username="u",
        expires=datetime(2030, 1, 1, tzinfo=timezone.utc),
    )
    new_expiry = datetime(2031, 1, 1, tzinfo=timezone.utc)
    edit = parse_stateful_token({"token": "a", "expires": "2031-01-01T00:00:00Z"})
    result = apply_token_edit(old, edit)
    assert result.expires == new_expiry
    assert result.username == "u"
    assert result.not_before is None
    assert old.expires == datetime(2030, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "edit",
    [
        StatefulToken(token="a", group="g"),
        StatefulToken(token="a", username=""),
        StatefulToken(token="a", permissions=[]),
        StatefulToken(token="a", issued_by="x"),
        StatefulToken(token="a", issued_at=datetime(2030, 1, 1, tzinfo=timezone.utc)),
    ],
)
def test_apply_token_edit_forbidden(edit):
    with pytest.raises(TokenError) as info:
        apply_token_edit(StatefulToken(token="a"), edit)
    assert info.value.message == "this field cannot be edited"