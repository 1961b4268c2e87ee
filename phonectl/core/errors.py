# phonectl/core/errors.py
from __future__ import annotations


class PhoneCtlError(Exception):
    """
    Base class for all expected operational errors in phonectl.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, logs, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration / setup errors (no network access yet)
# ---------------------------------------------------------------------------

class ConfigError(PhoneCtlError):
    """
    Device configuration is missing, malformed or inconsistent.

    Examples:
      - device.yml not found
      - port is not an integer
      - reconnect policy with max_delay < base_delay
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Connection lifecycle errors
# ---------------------------------------------------------------------------

class DeviceConnectError(PhoneCtlError):
    """
    The device did not become reachable when the caller required it.

    The connection manager itself never raises this; it is used by callers
    that need a live link (e.g. the CLI waiting for a first connection).
    """
    code = "device_connect_error"

