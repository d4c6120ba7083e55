"""Log sink and per-tool log levels."""
