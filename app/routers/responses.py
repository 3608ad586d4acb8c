"""Turns service results into HTTP responses. The body is always the result."""

from fastapi.responses import JSONResponse
from app.services.result import OperationResult, ErrorKind

_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.STORE_FAILURE: 503,
}


def to_response(result: OperationResult) -> JSONResponse:
    code = 200 if result.ok else _STATUS_CODES[result.error]
    return JSONResponse(status_code=code, content=result.to_dict())
