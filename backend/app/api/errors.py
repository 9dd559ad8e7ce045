from __future__ import annotations

from fastapi import HTTPException, status

from backend.app.core.exceptions import (
    AuthorizationDeniedError,
    AuthorizationPendingError,
    InvalidTransitionError,
    LedgerError,
    NotFoundError,
    PersistenceFailure,
    PickingIncompleteError,
)

_STATUS_BY_ERROR: list[tuple[type[LedgerError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PickingIncompleteError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (AuthorizationPendingError, status.HTTP_409_CONFLICT),
    (AuthorizationDeniedError, status.HTTP_403_FORBIDDEN),
    (PersistenceFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def http_error(exc: LedgerError) -> HTTPException:
    """Map a service error to an HTTP response carrying ``{code, message}``."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=status_code, detail=exc.to_dict())
