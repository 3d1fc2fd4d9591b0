"""HTTP errors carrying a machine-readable error code."""

from typing import Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from dynalink.services.exceptions import ServiceError


class APIError(HTTPException):
    """HTTPException rendered as ``{"detail": ..., "error_code": ...}``."""

    def __init__(self, status_code: int, detail: str, error_code: str, headers: Optional[dict] = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

    @classmethod
    def from_service_error(cls, error: ServiceError) -> "APIError":
        return cls(
            status_code=error.status_code,
            detail=str(error) or error.__class__.__name__,
            error_code=error.error_code,
        )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
        headers=exc.headers,
    )
