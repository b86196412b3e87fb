"""Exception hierarchy for the ingestion pipeline."""


class HealthBridgeError(Exception):
    """Base class for service errors."""


class ValidationError(HealthBridgeError):
    """A payload field is missing, malformed or out of range."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class AuthError(HealthBridgeError):
    """Bearer token missing or incorrect."""

    def __init__(self) -> None:
        super().__init__("Unauthorized")


class StoreError(HealthBridgeError):
    """The persistence layer rejected or failed an operation."""


class IngestionError(HealthBridgeError):
    """Samples could not be applied to the store."""

    def __init__(self, message: str, submitted: int) -> None:
        super().__init__(message)
        self.submitted = submitted
