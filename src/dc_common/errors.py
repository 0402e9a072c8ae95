"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/User
  8xxx: Credentials (password hashing)
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth/User ---

class EmailExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Email already in use", 409)


class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid email or password", 401)


# --- 8xxx: Credentials ---
# Messages stay generic: callers must not learn why hashing failed.

class HashingUnavailableError(AppError):
    """Backend could not be initialized within the retry budget."""

    def __init__(self) -> None:
        super().__init__(8001, "Service temporarily unavailable", 503)


class HashingFailedError(AppError):
    """Unexpected derivation error. Always a bug."""

    def __init__(self) -> None:
        super().__init__(8002, "Internal server error", 500)


class MalformedRecordError(AppError):
    """Stored credential record cannot be parsed. Never leaves the service."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(8003, f"Malformed credential record: {reason}", 500)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
