"""RFC 7807 Problem Details error response formatting"""

import logging
from typing import Optional, Dict, List
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from invoicer.services.blob_store import BlobNotFoundError, BlobStoreError
from invoicer.services.errors import (
    ConflictError,
    MetadataStoreError,
    NotFoundError,
    PayloadTooLargeError,
    UploadError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_TYPE_BASE = "https://api.invoicer.app/errors"


def create_error_response(
    status_code: int,
    title: str,
    detail: str,
    error_type: Optional[str] = None,
    instance: Optional[str] = None,
    errors: Optional[List[Dict[str, str]]] = None
) -> JSONResponse:
    """
    Create an RFC 7807 compliant error response

    Args:
        status_code: HTTP status code
        title: Short error title
        detail: Detailed error message
        error_type: Error type URI (defaults to generic type based on status code)
        instance: Request path or identifier
        errors: List of validation errors with field and message

    Returns:
        JSONResponse with problem details
    """
    # Default error types based on status code
    error_type_map = {
        400: "validation_error",
        404: "not_found",
        409: "conflict",
        413: "payload_too_large",
        500: "internal_server_error",
        502: "bad_gateway",
    }

    if not error_type:
        error_type = error_type_map.get(status_code, "error")

    problem = {
        "type": f"{ERROR_TYPE_BASE}/{error_type}",
        "title": title,
        "status": status_code,
        "detail": detail
    }

    if instance:
        problem["instance"] = instance

    if errors:
        problem["errors"] = errors

    return JSONResponse(
        status_code=status_code,
        content=problem
    )


# Most specific first; the first matching class wins
ERROR_STATUS = [
    (PayloadTooLargeError, 413, "Payload Too Large"),
    (ValidationError, status.HTTP_400_BAD_REQUEST, "Validation Error"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "Not Found"),
    (BlobNotFoundError, status.HTTP_404_NOT_FOUND, "Not Found"),
    (ConflictError, status.HTTP_409_CONFLICT, "Conflict"),
    (UploadError, status.HTTP_502_BAD_GATEWAY, "Upload Failed"),
    (BlobStoreError, status.HTTP_502_BAD_GATEWAY, "Storage Error"),
    (MetadataStoreError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error"),
]


async def service_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map service exceptions to problem details"""
    for error_class, status_code, title in ERROR_STATUS:
        if isinstance(exc, error_class):
            if status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc}")
            return create_error_response(
                status_code=status_code,
                title=title,
                detail=str(exc),
                instance=request.url.path,
            )
    raise exc


def register_exception_handlers(app: FastAPI) -> None:
    """Install service error handlers on the application"""
    for error_class, _, _ in ERROR_STATUS:
        app.add_exception_handler(error_class, service_error_handler)
