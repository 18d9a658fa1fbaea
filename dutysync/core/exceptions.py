"""
Service-wide exception hierarchy.

Every layer below the blueprints raises these types and nothing else for
expected failures. The swap workflow engine converts them into structured
``OperationResult`` objects at its public boundary; blueprint error
handlers map any that escape a helper onto HTTP status codes.

Usage:
    from dutysync.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="SwapPair", resource_id="b0c6…")
    raise ValidationError("Reason is required", details={"reason": "blank"})
"""


class NotFoundError(Exception):
    """Raised when a referenced unit, person, slot or swap does not exist.

    Args:
        resource: Human-readable entity name (e.g. "UnitSection", "DutySlot").
        resource_id: The id that was looked up. Included in the message.
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
    """Raised when a request is malformed, self-referential or a duplicate.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised when the acting user's roles or identity do not permit the action.

    Covers role/scope mismatches, self-approval and actions reserved for the
    requester or for one of the two parties.
    """


class StateError(Exception):
    """Raised when the action is invalid for the swap's current state.

    Also used for internal invariant violations (e.g. an empty approval
    chain): the mutation fails closed and nothing is written.
    """


class ConflictError(Exception):
    """Raised when an optimistic version check fails on save.

    Args:
        resource: Model name.
        field: The versioned field.
        value: The version the writer expected to find.
    """

    def __init__(self, resource: str, field: str, value: str | int | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} was modified concurrently"
        super().__init__(msg)


DOMAIN_ERRORS = (NotFoundError, ValidationError, AuthorizationError, StateError, ConflictError)
