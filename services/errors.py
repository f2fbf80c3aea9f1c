# User value: This file names every failure the console can hit so operators get a clear reason.
from typing import Optional


class ExtractorError(Exception):
    error_code = "EXTRACTOR_ERROR"


class ConfigError(ExtractorError):
    """Required source identifiers or inputs are missing; raised before any network call."""

    error_code = "CONFIG_ERROR"


class RemoteError(ExtractorError):
    """The backend answered with ``success: false`` or a payload that does not validate."""

    error_code = "REMOTE_ERROR"

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(ExtractorError):
    """The request never produced a response (connect failure, timeout, protocol error)."""

    error_code = "TRANSPORT_ERROR"
