"""Base exception hierarchy for the fraud engine."""


class FraudEngineError(Exception):
    """Base exception for all fraud engine errors."""
    pass


class DomainError(FraudEngineError):
    """Base exception for domain-related errors."""
    pass


class ApplicationError(FraudEngineError):
    """Base exception for application layer errors."""
    pass


class ValidationError(DomainError):
    """Raised when domain validation fails."""
    pass


class BusinessRuleViolationError(DomainError):
    """Raised when a business rule is violated."""
    pass


class EntityNotFoundError(ApplicationError):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"{entity_type} with ID {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id
