from fastapi import status


class AppError(Exception):
    """Base error carrying the HTTP status and the message safe to show to callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        return self.message


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid token"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class UserNotFoundError(NotFoundError):
    default_message = "User not found"


class ProviderError(AppError):
    """Billing provider call failed or is misconfigured."""

    default_message = "Payment provider error"


class SignatureError(ProviderError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid signature"


class InternalError(AppError):
    retryable: bool = False

    @property
    def public_message(self) -> str:
        # Internal details stay in the logs.
        return "Internal server error"


class StoreError(InternalError):
    pass


class StoreUnavailableError(StoreError):
    retryable = True


class StoreConflictError(StoreError):
    retryable = True


class DuplicateRowError(StoreError):
    """Insert hit a unique constraint."""
