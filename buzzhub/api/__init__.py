"""HTTP and WebSocket gateway."""
