"""Typed operational errors.

Each class subclasses the matching Werkzeug HTTP exception, so services can raise
them directly and the app-wide error handler renders the standard JSON shape.
Anything that is not an HTTPException is treated as an unexpected failure (500).
"""
from __future__ import annotations
from werkzeug.exceptions import BadRequest, Conflict, Forbidden, NotFound, Unauthorized


class ValidationError(BadRequest):
    """Malformed input, insufficient stock or another business-rule violation."""

    def __init__(self, description: str = 'Validation failed'):
        super().__init__(description=description)


class UnauthorizedError(Unauthorized):
    def __init__(self, description: str = 'Unauthorized'):
        super().__init__(description=description)


class ForbiddenError(Forbidden):
    """Role, ownership or transition not permitted."""

    def __init__(self, description: str = 'Forbidden'):
        super().__init__(description=description)


class NotFoundError(NotFound):
    def __init__(self, description: str = 'Resource not found'):
        super().__init__(description=description)


class ConflictError(Conflict):
    """A concurrent writer changed the row after it was read; the caller may retry."""

    def __init__(self, description: str = 'Concurrent update detected, retry the operation'):
        super().__init__(description=description)


__all__ = ['ValidationError', 'UnauthorizedError', 'ForbiddenError', 'NotFoundError', 'ConflictError']
