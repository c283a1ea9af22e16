# Overview: Exception taxonomy for the authentication flows.

"""
Every flow error carries a message that is safe to show to the end user
and the HTTP status the routes answer with. Routes catch AuthFlowError
once and serialize it; anything else is an internal error (500).
"""


class AuthFlowError(Exception):
    """Base class for user-facing authentication failures."""
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class AccountNotFoundError(AuthFlowError):
    status_code = 404
    default_message = "Account not found"


class NoPendingRequestError(AuthFlowError):
    status_code = 400
    default_message = "No pending request found. Please request a new code."


class SecretExpiredError(AuthFlowError):
    status_code = 400
    default_message = "Code expired. Please request a new one."


class InvalidSecretError(AuthFlowError):
    status_code = 400
    default_message = "Invalid code"


class AttemptsExceededError(AuthFlowError):
    status_code = 429
    default_message = "Too many invalid attempts. Please request a new code."


class RateLimitedError(AuthFlowError):
    status_code = 429
    default_message = "Please wait before requesting another code"

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "retry_after_seconds": self.retry_after_seconds}


class UnauthorizedError(AuthFlowError):
    status_code = 401
    default_message = "Authentication required"


class EmailNotVerifiedError(AuthFlowError):
    status_code = 403
    default_message = "Please verify your email before signing in"


class AccountLockedError(AuthFlowError):
    status_code = 423
    default_message = "Account temporarily locked due to too many failed login attempts"

    def __init__(self, retry_after_seconds: int | None = None, message: str | None = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "locked": True, "retry_after_seconds": self.retry_after_seconds}


class DeliveryFailedError(AuthFlowError):
    status_code = 502
    default_message = "Failed to send email. Please try again later."

    def __init__(self, reason: str | None = None, message: str | None = None):
        # reason goes to operational logs only, never into the response body
        self.reason = reason
        super().__init__(message)


class AdminAccessDeniedError(AuthFlowError):
    status_code = 403
    default_message = "Admin access required"
