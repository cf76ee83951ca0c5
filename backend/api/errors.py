import logging

from fastapi import HTTPException

from services.errors import (
    ConflictError,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
    PlanEngineError,
    PlanGenerationError,
    UpstreamServiceError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[PlanEngineError], int], ...] = (
    (InvalidInputError, 400),
    (InvalidCredentialsError, 401),
    (NotFoundError, 404),
    (ConflictError, 409),
    (UpstreamServiceError, 502),
)


def to_http_exception(exc: PlanEngineError) -> HTTPException:
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    if isinstance(exc, InvalidInputError) and exc.errors:
        return HTTPException(status_code=status_code, detail={"message": str(exc), "errors": exc.errors})
    if isinstance(exc, PlanGenerationError) and exc.details:
        return HTTPException(status_code=status_code, detail={"message": str(exc), "details": exc.details})
    if status_code == 500:
        logger.error(f"Unmapped domain error {type(exc).__name__}: {exc}")
    return HTTPException(status_code=status_code, detail=str(exc))
