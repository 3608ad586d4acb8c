"""
Uniform result type for every core operation.
Failures are reported values, never exceptions: the caller always gets a
human-readable message plus a classified error kind.
"""

import functools
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Optional
from sqlalchemy.exc import SQLAlchemyError
from app.utils.logger import get_logger

logger = get_logger(__name__)


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION_FAILED = "validation_failed"
    STORE_FAILURE = "store_failure"


@dataclass
class OperationResult:
    ok: bool
    message: str
    error: Optional[ErrorKind] = None
    data: dict = field(default_factory=dict)

    @classmethod
    def success(cls, message: str, **data: Any) -> "OperationResult":
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, error: ErrorKind, message: str, **data: Any) -> "OperationResult":
        return cls(ok=False, message=message, error=error, data=data)

    def to_dict(self) -> dict:
        body = asdict(self)
        body["error"] = self.error.value if self.error else None
        return body


def not_found(message: str, **data) -> OperationResult:
    return OperationResult.failure(ErrorKind.NOT_FOUND, message, **data)


def conflict(message: str, **data) -> OperationResult:
    return OperationResult.failure(ErrorKind.CONFLICT, message, **data)


def validation_failed(message: str, **data) -> OperationResult:
    return OperationResult.failure(ErrorKind.VALIDATION_FAILED, message, **data)


def reports_store_failure(action: str):
    """
    Wrap an async service call taking `db` as its first argument.
    Any SQLAlchemyError rolls the session back and comes out as a
    store_failure result carrying the driver's message verbatim.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(db, *args, **kwargs):
            try:
                return await func(db, *args, **kwargs)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Store failure while {action}: {e}", exc_info=True)
                return OperationResult.failure(ErrorKind.STORE_FAILURE, f"Error {action}: {e}")
        return wrapper
    return decorator
