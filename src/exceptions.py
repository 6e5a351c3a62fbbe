"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message``, an optional ``details`` list and optional ``context``
    rendered at the top level of the error envelope.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []
        self.context = context or {}


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class ForbiddenException(AppException):
    code = "FORBIDDEN"
    status_code = 403


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 400


class DependencyException(AppException):
    """An external collaborator on the critical path failed."""

    code = "DEPENDENCY_FAILURE"
    status_code = 500
