"""
Custom exceptions for the commute arrival service.
"""

from typing import Optional


class TransitEtaException(Exception):
    """Base exception for application."""

    def __init__(
        self,
        detail: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        super().__init__(detail)


class UpstreamUnavailable(TransitEtaException):
    """Upstream returned a non-2xx status or did not answer in time."""

    def __init__(self, source: str, detail: str, upstream_status: Optional[int] = None):
        self.source = source
        self.upstream_status = upstream_status
        super().__init__(
            detail=f"Upstream {source} unavailable: {detail}",
            status_code=503,
            error_code="UPSTREAM_UNAVAILABLE",
        )


class DecodeError(TransitEtaException):
    """Upstream payload could not be decoded."""

    def __init__(self, source: str, detail: str):
        self.source = source
        super().__init__(
            detail=f"Malformed payload from {source}: {detail}",
            status_code=502,
            error_code="DECODE_ERROR",
        )


class AuthFailure(TransitEtaException):
    """Credentials or bearer token rejected by an upstream API."""

    def __init__(self, family: str, detail: str):
        self.family = family
        super().__init__(
            detail=f"Authentication failed for {family}: {detail}",
            status_code=502,
            error_code="AUTH_FAILURE",
        )


class ScheduleStoreUnavailable(TransitEtaException):
    """Schedule snapshot missing or unreadable."""

    def __init__(self, family: str, detail: str):
        self.family = family
        super().__init__(
            detail=f"Schedule snapshot {family} unavailable: {detail}",
            status_code=503,
            error_code="SCHEDULE_UNAVAILABLE",
        )


class QueryTimeout(TransitEtaException):
    """Query exceeded its wall-clock budget with nothing to fall back on."""

    def __init__(self, seconds: float):
        super().__init__(
            detail=f"Query timed out after {seconds:g}s",
            status_code=504,
            error_code="QUERY_TIMEOUT",
        )


class UnsupportedMode(TransitEtaException):
    """Unknown agency mode or route."""

    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            status_code=400,
            error_code="UNSUPPORTED_MODE",
        )
