from __future__ import annotations

from typing import Any, Dict

from painel.ui_strings import error_message


class AppError(Exception):
    """Failure answered as ``{"error", "message", "request_id"}`` plus ``payload``.

    ``message_key`` points into the Portuguese message catalog; ``details``
    only reaches the logs.
    """

    code = "unexpected_error"
    message_key = "unexpected_error"
    http_status = 500

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or type(self).code).strip()
        self.message_key = (message_key or type(self).message_key).strip()
        self.http_status = int(http_status or type(self).http_status)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    @property
    def server_fault(self) -> bool:
        return self.http_status >= 500

    def user_message(self) -> str:
        return error_message(self.message_key, error_message("unexpected_error"))

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        body: Dict[str, Any] = dict(self.payload)
        body.update({"error": self.code, "message": self.user_message(), "request_id": request_id})
        return body


class ValidationError(AppError):
    """Record payload, filter or batch input the panel cannot accept."""

    code = "payload_invalid"
    message_key = "payload_invalid"
    http_status = 400


class AuthenticationError(AppError):
    code = "auth_required"
    message_key = "auth_required"
    http_status = 401


class NotFoundError(AppError):
    """The return or occurrence does not exist for the current owner."""

    code = "record_not_found"
    message_key = "record_not_found"
    http_status = 404


class RateLimitError(AppError):
    code = "rate_limit_exceeded"
    message_key = "rate_limited"
    http_status = 429

    def __init__(self, retry_after: int, **kwargs: Any) -> None:
        super().__init__(payload={"retry_after": retry_after}, **kwargs)
        self.retry_after = retry_after


class StorageError(AppError):
    """Attachment files could not be written."""

    code = "storage_unavailable"
    message_key = "storage_unavailable"
    http_status = 503
