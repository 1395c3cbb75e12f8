"""Core synchronization logic: engine, checkpoint protocol, and scheduler."""
