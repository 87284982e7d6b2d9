"""Error taxonomy shared by the service layer and the HTTP routers."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class ParleyError(HTTPException):
    """Base class for errors raised by the message service."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal error"

    def __init__(self, detail: Any = None, headers: dict[str, str] | None = None) -> None:
        super().__init__(
            status_code=self.status_code,
            detail=detail if detail is not None else self.default_detail,
            headers=headers,
        )


class Unauthenticated(ParleyError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"

    def __init__(self, detail: Any = None) -> None:
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class NotFound(ParleyError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Forbidden(ParleyError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class ValidationError(ParleyError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class PayloadTooLarge(ValidationError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_detail = "Payload too large"


class ExternalFetchError(ParleyError):
    """Remote fetch failed; never leaves the unfurl service."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Remote fetch failed"


__all__ = [
    "ParleyError",
    "Unauthenticated",
    "NotFound",
    "Forbidden",
    "ValidationError",
    "PayloadTooLarge",
    "ExternalFetchError",
]
