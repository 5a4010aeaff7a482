"""Exceptions shared by capability collaborators, adapters and the uploader.

Capability implementations raise ``PermissionDeniedError`` or
``CapabilityUnavailableError``; adapters translate both into degraded
``FetchResult`` values, so neither ever escapes a collection run.
"""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for all Lifelog telemetry errors."""


class PermissionDeniedError(TelemetryError):
    """The user declined (or revoked) read access to a data source."""


class CapabilityUnavailableError(TelemetryError):
    """The platform or device lacks the capability (simulator, missing sensor)."""


class UploadError(TelemetryError):
    """The final POST failed at the transport, HTTP or backend level.

    Attributes:
        status_code:  HTTP status, when a response was received.
        backend_code: Business error code from the response envelope, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        backend_code: str | int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.backend_code = backend_code
