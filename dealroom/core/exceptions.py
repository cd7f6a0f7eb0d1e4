"""
Engine-wide exception hierarchy.

Every service raises these types so that blueprints can register one
handler per type and return consistent HTTP status codes.

Usage:
    from dealroom.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="DiligenceRequest", resource_id=request_id)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a referenced request, comment or template does not exist.

    Args:
        resource: Human-readable entity name (e.g. "DiligenceRequest").
        resource_id: The key that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input violates a business rule before any write happens.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class StoreError(Exception):
    """Raised when the underlying database read or write fails.

    The session has already been rolled back when this is raised, so the
    caller observes no partial state from the failed operation.

    Args:
        operation: Short label of the attempted store call (e.g. "create_request").
        cause: The original driver / SQLAlchemy exception.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Store operation '{operation}' failed"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class PartialNotificationFailure(Exception):
    """The primary mutation committed but its notification batch did not.

    Never propagated out of a service call: services catch it, log it and
    report it next to the successful result.

    Args:
        event: Fan-out event name (e.g. "status_change").
        recipients: User ids the failed batch was addressed to.
        cause: The original exception from the batch insert.
    """

    def __init__(self, event: str, recipients: list[str], cause: Exception | None = None) -> None:
        self.event = event
        self.recipients = list(recipients)
        self.cause = cause
        super().__init__(
            f"Notification batch for '{event}' to {len(self.recipients)} recipient(s) failed"
        )

    def to_dict(self) -> dict:
        return {
            "event": self.event,
            "recipients": self.recipients,
            "error": str(self.cause) if self.cause else None,
        }
