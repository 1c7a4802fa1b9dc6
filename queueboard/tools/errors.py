from fastapi import HTTPException

from queueboard.services.exceptions import NotFoundError, ServiceError, ValidationError


def to_http_exception(exc: ServiceError) -> HTTPException:
    """Map a service failure onto the status code the routes return."""

    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail={"message": str(exc), "issues": exc.issues})
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))
