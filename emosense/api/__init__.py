"""EmoSense - HTTP API package (routes and schemas)."""
