"""Typed engine errors and their HTTP rendering."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


def build_error_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


class PipelineError(Exception):
    """Base class for errors raised by the stage and transition services."""

    code = "pipeline_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def payload(self) -> Dict[str, Any]:
        return build_error_payload(self.code, self.message, self.details)


class NotFoundError(PipelineError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{resource} not found", details)
        self.resource = resource


class ValidationError(PipelineError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, {field: [message]})


class ConflictError(PipelineError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class StoreError(PipelineError):
    """Transient persistence failure; the whole operation can be retried."""

    code = "store_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def pipeline_error_handler(_: Request, exc: PipelineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.payload)
