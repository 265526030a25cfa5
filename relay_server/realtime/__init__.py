"""
Real-time pairing and relay for WebSocket peers.

Rooms pair one role A connection with one role B connection; the router
moves frames between them and the liveness monitor evicts dead peers.
"""
