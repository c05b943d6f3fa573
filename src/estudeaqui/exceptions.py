"""
Exceptions raised by the study core.
"""


class EstudeaquiError(Exception):
    """Base exception for all Estudeaqui errors."""
    pass


class ValidationError(EstudeaquiError):
    """Raised when input fails validation, before any state is touched."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field
        self.message = message

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class NotFoundError(EstudeaquiError):
    """Raised when a requested entity does not exist."""

    def __init__(self, kind: str, entity_id):
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class InvalidTransitionError(EstudeaquiError):
    """Raised when an operation is not allowed from the current state."""
    pass
