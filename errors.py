class NotFoundError(ValueError):
    """Entity is absent or not owned by the caller."""


class InvalidStateError(ValueError):
    """Operation is not allowed from the entity's current state."""


class ConflictError(ValueError):
    """Operation would violate a uniqueness or cardinality rule."""


class UnauthorizedError(PermissionError):
    """No caller identity could be resolved."""
