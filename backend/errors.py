class DomainError(Exception):
    """Base exception for business rule violations."""

    status_code = 400


class ValidationError(DomainError):
    """Raised when input is blank, out of range or clashes with existing data."""


class NotFoundError(DomainError):
    """Raised when an id does not resolve to a row."""

    status_code = 404


class ForbiddenError(DomainError):
    """Raised when the caller may not perform the operation."""

    status_code = 403
