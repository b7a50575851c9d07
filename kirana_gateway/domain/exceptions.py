"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class NotFoundError(DomainException):
    """Entity is missing or not owned by the acting shop"""

    pass


class ValidationError(DomainException):
    """Input is malformed: bad time format, invalid enum, negative amount"""

    pass


class InvalidScheduleError(DomainException):
    """Delivery schedule cannot produce a valid next delivery"""

    pass


class PolicyViolationError(DomainException):
    """Action is disallowed by shop settings or entity state"""

    pass


class CreditLimitExceededError(DomainException):
    """Transaction would push the balance above the credit limit"""

    pass


class DuplicateError(DomainException):
    """Entity already exists for the given key"""

    pass


class InvalidTransitionError(DomainException):
    """Status change is not allowed from the current status"""

    pass


class ConcurrentUpdateError(DomainException):
    """Row was modified by another request between read and write"""

    pass
