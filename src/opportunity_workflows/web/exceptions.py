"""Exception handling for opportunity workflow web endpoints.

This module maps the library's exception hierarchy onto HTTP responses with a
small JSON body of the form ``{"error": <code>, "message": <text>}``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from litestar import Response
from litestar.status_codes import HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND

if TYPE_CHECKING:  # pragma: no cover
    from litestar import Request

    from opportunity_workflows.exceptions import (
        NotFoundError,
        OpportunityWorkflowError,
        WorkflowValidationError,
    )

__all__ = [
    "error_code",
    "not_found_handler",
    "validation_error_handler",
]

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def error_code(exc: OpportunityWorkflowError) -> str:
    """Derive a snake_case error code from an exception class name.

    Example:
        >>> error_code(ProgressNotFoundError("opp-1"))
        'progress_not_found'
    """
    name = type(exc).__name__.removesuffix("Error")
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _error_response(exc: OpportunityWorkflowError, status_code: int) -> Response:
    return Response(
        content={"error": error_code(exc), "message": str(exc)},
        status_code=status_code,
        media_type="application/json",
    )


def not_found_handler(_request: Request, exc: NotFoundError) -> Response:
    """Exception handler returning 404 for missing users, workflows and steps.

    Args:
        _request: The Litestar request object.
        exc: The raised exception.

    Returns:
        Response with error details.
    """
    return _error_response(exc, HTTP_404_NOT_FOUND)


def validation_error_handler(_request: Request, exc: WorkflowValidationError) -> Response:
    """Exception handler returning 400 for requests rejected before any mutation.

    Args:
        _request: The Litestar request object.
        exc: The raised exception.

    Returns:
        Response with error details.
    """
    return _error_response(exc, HTTP_400_BAD_REQUEST)
