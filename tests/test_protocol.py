import json

import pytest

from galene.protocol import (
    CLOSE_INTERNAL_SERVER_ERR,
    CLOSE_NO_STATUS_RECEIVED,
    CLOSE_NORMAL_CLOSURE,
    CLOSE_PROTOCOL_ERROR,
    PROTOCOL_VERSION,
    ClientMessage,
    KickError,
    ProtocolError,
    UserError,
    close_code,
    close_message,
    error_message,
    format_close_payload,
)


def test_handshake_to_dict():
    m = ClientMessage(type="handshake", version=[PROTOCOL_VERSION])
    assert m.to_dict() == {"type": "handshake", "version": [PROTOCOL_VERSION]}


def test_ping_to_json():
    assert ClientMessage(type="ping").to_json() == '{"type":"ping"}'


def test_empty_username_is_kept():
    m = ClientMessage(type="user", username="")
    assert m.to_dict() == {"type": "user", "username": ""}


def test_false_and_empty_fields_omitted():
    m = ClientMessage(
        type="chat", privileged=False, noecho=False, permissions=[], data={}
    )
    assert m.to_dict() == {"type": "chat"}


def test_key_order_follows_wire_format():
    m = ClientMessage(
        type="offer", label="camera", sdp="v=0", id="abc", rtc_configuration={}
    )
    assert list(m.to_dict()) == ["type", "id", "sdp", "label", "rtcConfiguration"]


def test_round_trip():
    password = "password"
    m = ClientMessage(
        type="join",
        kind="join",
        group="g",
        username="u",
        password=password,
        token="token",
        privileged=True,
        permissions=["present", "message"],
        data={"raisehand": True},
        value={"x": [1, 2]},
        noecho=True,
        candidate={"candidate": "c"},
        request={"": ["audio"]},
        rtc_configuration={"iceServers": []},
    )
    assert ClientMessage.from_json(m.to_json()) == m


def test_from_dict_ignores_unknown_and_defaults():
    m = ClientMessage.from_dict({"type": "pong", "unknown": 1, "id": None})
    assert m == ClientMessage(type="pong")


def test_from_dict_rejects_bad_types():
    with pytest.raises(ValueError):
        ClientMessage.from_dict({"type": 3})
    with pytest.raises(ValueError):
        ClientMessage.from_dict({"type": "x", "permissions": ["a", 1]})
    with pytest.raises(ValueError):
        ClientMessage.from_dict({"type": "x", "privileged": "yes"})


def test_from_json_rejects_non_object():
    with pytest.raises(ValueError):
        ClientMessage.from_json("[]")


def test_error_message_user_error():
    m = error_message("me", UserError("not authorised"))
    assert m == ClientMessage(
        type="usermessage",
        kind="error",
        dest="me",
        privileged=True,
        value="not authorised",
    )


def test_error_message_kick_default_text():
    m = error_message("me", KickError("op", "boss", ""))
    assert m.kind == "kicked"
    assert m.id == "op"
    assert m.username == "boss"
    assert m.value == "you have been kicked out"


def test_error_message_kick_with_message():
    m = error_message("me", KickError("op", None, "go away"))
    assert m.value == "go away"
    assert "username" not in m.to_dict()


def test_error_message_other_is_none():
    assert error_message("me", RuntimeError("boom")) is None
    assert error_message("me", ProtocolError("bad")) is None


def test_close_codes():
    assert close_code(ProtocolError("bad")) == CLOSE_PROTOCOL_ERROR
    assert close_code(UserError("x")) == CLOSE_NORMAL_CLOSURE
    assert close_code(KickError()) == CLOSE_NORMAL_CLOSURE
    assert close_code(ConnectionResetError()) == CLOSE_NORMAL_CLOSURE
    assert close_code(RuntimeError()) == CLOSE_INTERNAL_SERVER_ERR
    assert close_code(None) == CLOSE_INTERNAL_SERVER_ERR


def test_format_close_payload():
    assert format_close_payload(CLOSE_NORMAL_CLOSURE, "bye") == b"\x03\xe8bye"
    assert format_close_payload(CLOSE_NO_STATUS_RECEIVED, "x") == b""


def test_close_message_protocol_error():
    m, payload = close_message("me", ProtocolError("spoofed client id"))
    assert m.type == "usermessage"
    assert m.kind == "error"
    assert m.value == "spoofed client id"
    assert int.from_bytes(payload[:2], "big") == CLOSE_PROTOCOL_ERROR
    assert payload[2:].decode() == "spoofed client id"


def test_close_message_user_error():
    err = UserError("no such user")
    m, payload = close_message("me", err)
    assert m == error_message("me", err)
    assert payload[2:].decode() == "no such user"
    assert int.from_bytes(payload[:2], "big") == CLOSE_NORMAL_CLOSURE


def test_close_message_peer_closed_and_internal():
    m, payload = close_message("me", ConnectionResetError())
    assert m is None
    assert payload == format_close_payload(CLOSE_NORMAL_CLOSURE, "")
    m, payload = close_message("me", RuntimeError("boom"))
    assert m is None
    assert payload == format_close_payload(CLOSE_INTERNAL_SERVER_ERR, "")


def test_to_json_is_valid_json():
    m = ClientMessage(type="chat", value="hello", dest="d")
    assert json.loads(m.to_json()) == m.to_dict()