"""Remote control client for the AI phone (LED, ringtone, event log)."""

__version__ = "0.1.0"
