class IdentityError(Exception):
    """Base class for failures raised by the reconciliation engine."""


class InvariantViolationError(IdentityError):
    """The stored contact graph is corrupt (no primary, or more than one)."""


class TransientConflictError(IdentityError):
    """Another writer holds the database; the whole pipeline may be retried."""


class ServiceUnavailableError(IdentityError):
    """Transient conflicts persisted past the retry budget."""

    def __init__(self, attempts: int):
        super().__init__(f"Contact store busy after {attempts} attempts")
        self.attempts = attempts
