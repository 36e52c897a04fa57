"""Translation of domain errors to HTTP status codes."""

from fastapi import HTTPException, status

from outreach_core.domain.errors import (
    AnalyticsTimeout,
    MissingRequiredField,
    NotFoundError,
    PayloadTooLarge,
    UnknownAccount,
)


def delivery_status_code(error: BaseException) -> int:
    """Status code for an abandoned webhook delivery, from its last error."""
    if isinstance(error, UnknownAccount):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, MissingRequiredField):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, PayloadTooLarge):
        return status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(error: Exception) -> HTTPException:
    """HTTPException for an error raised by a query or operator service."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, AnalyticsTimeout):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error)
    )
