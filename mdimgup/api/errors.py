"""
Translation of domain errors into HTTP responses.

Routes catch MdImgUpError and re-raise what this returns, so status
codes stay consistent across endpoints:

    ValidationError            422  (detail carries every violation)
    NameConflictError          409
    ProfileNotFoundError       404
    ConfigurationMissingError  409
    CredentialNotFoundError    409
    ImportFormatError          400
"""

import logging

from fastapi import HTTPException, status

from ..core.errors import (
    ConfigurationMissingError,
    CredentialNotFoundError,
    ImportFormatError,
    MdImgUpError,
    NameConflictError,
    ProfileNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def http_error(exc: MdImgUpError) -> HTTPException:
    if isinstance(exc, NameConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "errors": exc.errors},
        )
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Validation failed", "errors": exc.errors},
        )
    if isinstance(exc, ProfileNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (ConfigurationMissingError, CredentialNotFoundError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ImportFormatError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    logger.error("Unmapped domain error", extra={"error": str(exc), "type": type(exc).__name__})
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
