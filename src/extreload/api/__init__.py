"""HTTP and websocket surface of the reload server."""
