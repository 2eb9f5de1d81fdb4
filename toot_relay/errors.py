"""Error taxonomy for the relay.

Every per-event failure carries the pipeline stage it happened in so the
handler boundary can log and count it without inspecting the type.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for all relay errors."""

    stage = "unexpected"


class ConfigError(RelayError):
    """Required configuration is missing or invalid; the process must not start."""

    stage = "config"


class DecodeError(RelayError):
    """Post content could not be decoded into plain text."""

    stage = "decode"


class DestinationError(RelayError):
    """The destination network rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(DestinationError):
    """Session creation against the destination failed."""

    stage = "auth"


class SubmitError(DestinationError):
    """Record creation against the destination failed."""

    stage = "submit"


class StreamFault(RelayError):
    """The source stream cannot continue (e.g. the token was rejected)."""

    stage = "stream"
