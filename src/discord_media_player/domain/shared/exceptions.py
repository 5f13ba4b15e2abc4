"""Root of the player's exception hierarchy."""

from __future__ import annotations


class DomainError(Exception):
    """Base for every error the player raises on purpose.

    ``code`` is the stable identifier carried into ``TrackFailed`` events;
    subclasses set ``default_code`` instead of passing it on each raise.
    """

    default_code: str | None = None

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code or type(self).__name__


class BusinessRuleViolationError(DomainError):
    """A precondition does not hold, e.g. caching a live stream."""

    default_code = "BUSINESS_RULE_VIOLATION"

    def __init__(self, rule: str, message: str | None = None) -> None:
        super().__init__(message or f"Business rule violated: {rule}")
        self.rule = rule


class InvalidOperationError(DomainError):
    """A player or transport command arrived in a state that does not allow it."""

    default_code = "INVALID_OPERATION"

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        super().__init__(message or f"Cannot perform '{operation}' in state '{current_state}'")
        self.operation = operation
        self.current_state = current_state
