"""Default backend of the agent host server."""
