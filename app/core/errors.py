"""Typed API errors shared by services and routes.

Every failure that can reach a caller is one of these. The ``code`` values
form the public error taxonomy and are rendered verbatim in error bodies.
"""

from typing import Any, Optional, TYPE_CHECKING

from fastapi import Request, status
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from app.schemas.sync import SyncResult


class CatalogSyncError(Exception):
    """Base exception for catalog sync errors."""

    code = "internal_server_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        causes: Optional[list[Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.causes = causes or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "error": self.code,
            "status": self.status_code,
            "cause": [str(c) for c in self.causes],
        }


class BadRequestError(CatalogSyncError):
    """Missing or invalid required input."""

    code = "bad_request"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(CatalogSyncError):
    """No credential, shop or items for the caller."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class BadGatewayError(CatalogSyncError):
    """An upstream service returned a non-success response or timed out."""

    code = "bad_gateway"
    status_code = status.HTTP_502_BAD_GATEWAY


class InternalServerError(CatalogSyncError):
    """Decode failure or unexpected local fault."""

    code = "internal_server_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class SyncFailedError(CatalogSyncError):
    """Every item of a sync run failed; the partial result is attached."""

    code = "etl_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, result: "SyncResult"):
        self.result = result
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["result"] = self.result.model_dump(mode="json")
        return body


async def catalog_sync_error_handler(
    request: Request, exc: CatalogSyncError
) -> JSONResponse:
    """Render a CatalogSyncError as its JSON error body."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
