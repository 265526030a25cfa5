"""Pairing relay server: two-party WebSocket rendezvous and relay."""

__version__ = "0.1.0"
