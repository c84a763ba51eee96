"""Error taxonomy surfaced to callers of the analytics engine."""

from typing import Any


class AnalyticsError(Exception):
    """Base exception carrying a stable error code and an HTTP-class status."""

    code = "ANALYTICS_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Error payload. Never carries partial figures."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"success": False, "error": error}


class InvalidQueryError(AnalyticsError):
    """Query parameters failed validation."""

    code = "INVALID_QUERY"
    status_code = 400


class ScopeResolutionError(AnalyticsError):
    """Caller has no resolvable entity scope. Not retried."""

    code = "SCOPE_UNRESOLVED"
    status_code = 403


class UpstreamReadError(AnalyticsError):
    """A ledger, mapping or scope read failed; the aggregation was aborted."""

    code = "UPSTREAM_READ_FAILED"
    status_code = 502


class UpstreamTimeoutError(UpstreamReadError):
    """The fetch phase exceeded its time budget."""

    code = "UPSTREAM_TIMEOUT"
    status_code = 504
