"""
Service-wide exception hierarchy.

Services raise these types; ``taskflow.utils.errors.register_error_handlers``
maps each one to an HTTP status once for the whole app, so blueprints never
translate errors by hand.

Usage:
    from taskflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Task", resource_id=42)
    raise ValidationError("Stage orders must be unique", details={"orders": [0, 0]})
"""


class NotFoundError(Exception):
    """Raised when a requested entity does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Task", "Workflow").
        resource_id: The id that was looked up.
    """

    status_code = 404

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource} not found"
        if resource_id is not None:
            msg = f"{resource} id={resource_id} not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised for malformed or missing input and broken business rules
    (duplicate stage orders, empty stage list, unknown stage).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for the API response.
    """

    status_code = 400

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthError(Exception):
    """Raised for missing, invalid or expired tokens and bad credentials."""

    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when a role or ownership check denies an operation.

    Args:
        message: Human-readable reason.
        operation: Policy operation that was denied, for logs.
    """

    status_code = 403

    def __init__(self, message: str = "Not authorized", operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation clashes with existing state.

    Args:
        message: Human-readable explanation.
    """

    status_code = 409

    def __init__(self, message: str) -> None:
        super().__init__(message)
