"""
Conversion of service Results into HTTP responses.
"""

import logging
from typing import TypeVar

from fastapi import HTTPException

from app.errors import ErrorKind, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


def unwrap(result: Result[T]) -> T:
    """Return the value of a successful Result or raise the matching HTTPException."""
    if result.ok:
        return result.value

    if result.error == ErrorKind.INTERNAL:
        logger.error(f"Internal error: {result.message}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    raise HTTPException(status_code=result.error.http_status, detail=result.message)
