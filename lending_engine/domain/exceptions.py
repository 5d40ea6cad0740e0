"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is malformed: non-positive amount, missing reason, unknown enum value"""

    pass


class NotFoundError(DomainException):
    """Referenced loan, offer, proof or flag does not exist"""

    pass


class NotAuthorizedError(DomainException):
    """Actor is not a party allowed to perform the operation"""

    pass


class StateConflictError(DomainException):
    """Entity is not in a state that allows the operation; caller must re-fetch"""

    pass


class InvariantViolation(DomainException):
    """
    Internal consistency check failed (schedule sum mismatch, overpaid installment).

    Never caused by valid input. Surfaced separately from user-facing errors so
    operators can alert on it.
    """

    pass


class NotifierError(DomainException):
    """Notification webhook could not be delivered"""

    pass
