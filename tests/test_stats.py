import pytest

from galene.stats import Client, Conn, GroupStats, Track, sort_groups


def test_track_round_trip():
    track = Track(
        bitrate=12345,
        loss=0.25,
        max_bitrate=99999,
        rtt=7_000_000,
        jitter=3_000_000,
        sid=1,
        max_sid=2,
        tid=0,
        max_tid=3,
    )
    assert Track.from_dict(track.to_dict()) == track


def test_track_omits_empty_fields():
    d = Track(bitrate=42, loss=0.5).to_dict()
    assert d == {"bitrate": 42, "loss": 0.5}


def test_track_layer_keys():
    d = Track(sid=1, max_sid=2, tid=3, max_tid=4).to_dict()
    assert d["sid"] == 1
    assert d["maxSid"] == 2
    assert d["tid"] == 3
    assert d["maxTid"] == 4


def test_duration_serialised_in_milliseconds():
    d = Track(rtt=2_000_000_000).to_dict()
    assert d["rtt"] == 2000.0


def test_duration_parsed_from_milliseconds():
    track = Track.from_dict({"bitrate": 1, "loss": 0, "jitter": 1.5})
    assert track.jitter == 1_500_000
    assert track.rtt == 0


def test_bad_duration_raises():
    with pytest.raises(TypeError):
        Track.from_dict({"rtt": "slow"})


def test_conn_round_trip():
    conn = Conn(id="c1", tracks=[Track(bitrate=1), Track(bitrate=2)], max_bitrate=5)
    d = conn.to_dict()
    assert [t["bitrate"] for t in d["tracks"]] == [1, 2]
    assert Conn.from_dict(d) == conn


def test_conn_always_has_tracks():
    d = Conn(id="x").to_dict()
    assert d == {"id": "x", "tracks": []}


def test_client_round_trip_and_omission():
    client = Client(id="a", up=[Conn(id="u")])
    d = client.to_dict()
    assert "down" not in d
    assert Client.from_dict(d) == client


def test_group_stats_omits_clients_when_empty():
    assert GroupStats(name="g").to_dict() == {"name": "g"}
    d = GroupStats(name="g", clients=[Client(id="c")]).to_dict()
    assert d["clients"] == [{"id": "c"}]


def test_sort_groups():
    groups = [
        GroupStats(name="zeta", clients=[Client(id="b"), Client(id="a")]),
        GroupStats(name="alpha", clients=[Client(id="y"), Client(id="x")]),
    ]
    result = sort_groups(groups)
    assert [g.name for g in result] == ["alpha", "zeta"]
    for g in result:
        ids = [c.id for c in g.clients]
        assert ids == sorted(ids)
    # the input is left untouched
    assert [c.id for c in groups[0].clients] == ["b", "a"]