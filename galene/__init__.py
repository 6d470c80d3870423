"""RTP packet caching, seqno remapping, RTP/NTP timekeeping, rate control and signalling helpers for a videoconferencing server."""

__version__ = "0.9.0"