# galene

Building blocks for a selective forwarding videoconferencing server,
in pure Python with no runtime dependencies. Sequence numbers are
handled modulo 2^16, as in RTP.

## Modules

- `galene.packetcache`: a thread-safe ring of recently received RTP
  packets (`Cache`). It remembers the last keyframe, keeps a loss bitmap
  for generating NACKs (`bitmap_get`, `loss_bitmap`) and counts what is
  needed for receiver reports (`get_stats`, returning `Stats`). Packets
  are read back with `get`, `get_length` or `get_at`. The cache can be
  resized with `resize` or `resize_cond`. `to_bitmap` packs a sorted list
  of seqnos into a NACK pair; `nack_pair_seqnos` expands one.
- `galene.packetmap`: `PacketMap` remaps sequence numbers and picture ids
  when packets are dropped on the way to a receiver (`map`, `drop`,
  `lookup`, `reverse`, and the `delta`, `pid_delta` and `entry_count`
  properties). `compare` orders seqnos modulo 2^16.
- `galene.rtptime`: conversions between durations (integer nanoseconds),
  units of 1/hz and jiffies (`from_duration`, `to_duration`, `now`,
  `microseconds`, `jiffies`, `time_to_jiffies`), and between Unix
  nanoseconds and 64-bit NTP timestamps (`time_to_ntp`, `ntp_to_time`).
- `galene.stats`: statistics records with JSON-ready dictionaries
  (`Track`, `Conn`, `Client`, `GroupStats`, each with `to_dict`, and
  `from_dict` except on `GroupStats`), and `sort_groups`.
- `galene.downtrack`: per-receiver state (`DownTrackState`). It covers
  the loss-based bitrate estimate (`update_rate`), REMB and loss limits
  (`get_max_bitrate`), RTT from reception reports (`handle_report`) and
  simulcast/SVC layer selection (`adjust_layer`, `LayerInfo`). Also
  `Bitrate`, `ReceiverStats` and the saturating `sadd`.
- `galene.upstream`: computations for incoming tracks. These are
  reception report blocks (`reception_report`, `fraction_lost`,
  `total_lost`, `ReceptionReport`) and the bitrate to request from a
  sender (`max_up_bitrate`). It also sizes the packet cache
  (`retransmission_timeout`, `cache_size`, `min_packet_cache`) and
  batches NACKs (`nack_pairs`).
- `galene.protocol`: the signalling message (`ClientMessage`, with
  `to_dict`, `from_dict`, `to_json`, `from_json`). It also defines the
  errors `ProtocolError`, `UserError` and `KickError`, and maps errors to
  user messages and websocket close frames (`error_message`, `close_code`,
  `close_message`, `format_close_payload`).
- `galene.requests`: stream requests (`parse_requested`,
  `requested_tracks`, `UpTrackInfo`) and permission changes
  (`apply_permission`, `member`, `addnew`, `remove`). It also handles
  the values of clearchat, subgroups and setdata actions
  (`parse_clearchat_value`, `format_subgroups`, `merge_user_data`).
- `galene.tokens`: stateful tokens (`StatefulToken`,
  `parse_stateful_token`). New tokens are checked with `check_new_token`
  and edits applied with `apply_token_edit`. Rejections raise
  `TokenError`.

## Installation

    pip install .

## Example

```python
from galene.packetcache import Cache
from galene.packetmap import PacketMap

cache = Cache(16)
first, index = cache.store(13, 42, False, False, b"\x80payload")
assert cache.get(13) == b"\x80payload"
assert cache.get_at(13, index) == b"\x80payload"
assert cache.last() == 13

m = PacketMap()
assert m.map(42, 1001) == (42, 0)
assert m.drop(43, 1002)           # packet 43 is dropped
assert m.map(45, 1003) == (44, 1)
assert m.reverse(44) == (45, 1)
```

## What this package does not do

It has no server and no command. It does not open WebRTC peer connections
or websockets, send or receive RTP/RTCP packets, manage groups or their
members, record to disk, or store tokens. It provides the state and
computations such a server needs, and the caller supplies the network
I/O, timing and storage.

## Running the tests

    pip install ".[test]"
    pytest