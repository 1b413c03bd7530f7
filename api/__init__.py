"""REST and WebSocket interface for the lidar server."""
