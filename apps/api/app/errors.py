"""Application exception types."""

from app.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error rendered as an ``ErrorResponse`` body.

    ``headers`` are copied onto the HTTP response, e.g. ``Retry-After`` for
    backpressure rejections.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict | None = None,
        *,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        self.headers = headers
        super().__init__(message)


__all__ = ["ApiError"]
