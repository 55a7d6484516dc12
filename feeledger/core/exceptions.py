from typing import Dict, Union

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors.

    ``kind`` is the stable machine-readable code exposed to API callers;
    ``message`` is the human-readable explanation.
    """

    kind = "internal_error"
    retryable = False

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_detail(self) -> Dict[str, Union[str, bool]]:
        return {"kind": self.kind, "message": self.message, "retryable": self.retryable}


class ValidationError(ServiceError):
    """Malformed or out-of-range input. Not retried."""

    kind = "validation_error"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class PermissionDeniedError(ServiceError):
    kind = "permission_denied"

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(ServiceError):
    """Referenced entity is absent, inactive or belongs to another tenant."""

    kind = "not_found"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(ServiceError):
    kind = "conflict"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class ImmutableStateError(ServiceError):
    kind = "immutable_state"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class AlreadyProcessedError(ServiceError):
    """Idempotency guard: the record was already verified or rejected."""

    kind = "already_processed"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class GenerationError(ServiceError):
    """Invoice number allocation exhausted its retries."""

    kind = "generation_failed"
    retryable = True

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class LedgerTimeoutError(ServiceError):
    """A persistence call exceeded its deadline. Nothing was committed."""

    kind = "timeout"
    retryable = True

    def __init__(self, message: str = "Ledger operation timed out; no changes were saved") -> None:
        super().__init__(message, status.HTTP_504_GATEWAY_TIMEOUT)
