"""HTTP and WebSocket routes for the pairing relay server."""
