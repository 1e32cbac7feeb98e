"""
Platform-wide exception hierarchy.

Services raise these; blueprints register handlers against them once and
get consistent HTTP status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Record", resource_id=42)
    raise ValidationError("company is required", details={"company": "missing"})

HTTP mapping (see app.utils.errors.register_error_handlers):
    ValidationError      400
    AuthenticationError  401 / 403
    PermissionDenied     403
    NotFoundError        404
    ConflictError        409
    TransitionError      409
    StoreError           500
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-scope
    access attempts. A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Record", "User").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is missing or malformed.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class AuthenticationError(Exception):
    """Missing (401) or invalid/expired (403) bearer credential."""

    def __init__(self, message: str, status: int = 401) -> None:
        self.status = status
        super().__init__(message)


class PermissionDenied(Exception):
    """The caller's role may not perform the requested action."""


class TransitionError(Exception):
    """Raised when a workflow action is not valid from the record's status."""

    def __init__(self, action: str, current: str, reason: str | None = None) -> None:
        msg = f"Cannot '{action}' record (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.action = action
        self.current_status = current
        self.reason = reason


class StoreError(Exception):
    """Underlying persistence failure."""
