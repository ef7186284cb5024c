"""Domain exceptions for the escrow marketplace.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
Each kind carries a stable ``code`` that is surfaced verbatim to the caller.
"""


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Caller identity ---


class UnauthenticatedError(MarketplaceError):
    """Raised when no actor can be resolved for the request."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message=message, code="UNAUTHENTICATED")


class PermissionDeniedError(MarketplaceError):
    """Raised when the actor's role or party membership check fails."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message=message, code="PERMISSION_DENIED")


# --- Input and context ---


class InvalidArgumentError(MarketplaceError):
    """Raised when a payload violates a schema or numeric invariant."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_ARGUMENT")


class FailedPreconditionError(MarketplaceError):
    """Raised when the current state or a feature flag rejects the operation."""

    def __init__(self, message: str, code: str = "FAILED_PRECONDITION") -> None:
        super().__init__(message=message, code=code)


class InvalidTransitionError(FailedPreconditionError):
    """Raised when an escrow state edge is absent from the transition table.

    Example: DRAFT -> FUNDED_HELD (must go through quoting and acceptance).
    """

    def __init__(self, current_state: str, attempted_state: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted_state}",
            code="INVALID_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_state = attempted_state


class ConcurrentModificationError(FailedPreconditionError):
    """Raised when another writer updated the same record first."""

    def __init__(self, entity: str) -> None:
        super().__init__(
            message=f"{entity} was modified concurrently; reload and retry",
            code="CONCURRENT_MODIFICATION",
        )
        self.entity = entity


class NotFoundError(MarketplaceError):
    """Raised when a referenced record does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
        )
        self.entity = entity
        self.entity_id = entity_id


# --- Payments ---


class UnimplementedError(MarketplaceError):
    """Raised when a payment-provider capability is not wired."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="UNIMPLEMENTED")


class PaymentProviderError(MarketplaceError):
    """Raised when a call to the payment provider fails."""

    def __init__(self, message: str, provider: str) -> None:
        super().__init__(message=message, code="PAYMENT_PROVIDER_ERROR")
        self.provider = provider


# --- Persistence ---


class ImmutableRecordError(MarketplaceError):
    """Raised when code attempts to update or delete an append-only row."""

    def __init__(self, table: str, operation: str) -> None:
        super().__init__(
            message=f"{table} is append-only; {operation} is not permitted",
            code="IMMUTABLE_RECORD",
        )
        self.table = table
        self.operation = operation
