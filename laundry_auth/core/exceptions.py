"""Custom exceptions for laundry-auth.

Lower layers (storage, session manager) raise precise exceptions. The
auth service deliberately collapses the security-sensitive ones into
``InvalidCredentialsError`` and ``InvalidTokenError`` before they reach a
client, so callers cannot tell which check failed.
"""


class LaundryAuthError(Exception):
    """Base exception for all laundry-auth errors.

    All laundry-auth exceptions inherit from this class, making it easy
    to catch every framework-specific error in one place.
    """

    def __init__(self, message: str, hint: str | None = None):
        """Initialize the exception.

        Args:
            message: The error message
            hint: Optional hint for resolving the error
        """
        self.message = message
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class StorageConnectionError(LaundryAuthError):
    """Raised when the S3 backend cannot be reached."""

    def __init__(
        self,
        message: str | None = None,
        original_error: Exception | None = None,
        endpoint: str | None = None,
    ):
        """Initialize the connection error.

        Args:
            message: Custom error message (optional)
            original_error: The original exception that caused this error
            endpoint: The S3 endpoint URL being connected to
        """
        self.original_error = original_error
        self.endpoint = endpoint

        if message:
            final_message = message
            hint = None
        elif original_error:
            final_message, hint = self._format_error(original_error, endpoint)
        else:
            final_message = "Failed to connect to S3"
            hint = "Check your AWS credentials and network connection."

        super().__init__(final_message, hint)

    def _format_error(
        self, error: Exception, endpoint: str | None
    ) -> tuple[str, str | None]:
        """Format the error message based on the underlying error."""
        error_str = str(error)

        if "Could not connect" in error_str or "Connection refused" in error_str:
            return (
                f"Could not connect to S3 at {endpoint or 'AWS'}",
                "Check your network connection and AWS_URL setting.",
            )

        if "InvalidAccessKeyId" in error_str or "SignatureDoesNotMatch" in error_str:
            return (
                "S3 rejected the configured credentials",
                "Check AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY.",
            )

        if "AccessDenied" in error_str:
            return (
                "Access denied to the account bucket",
                "Check your IAM permissions for S3 access.",
            )

        return (f"S3 connection error: {error}", None)


class StorageOperationError(LaundryAuthError):
    """Raised when an S3 read or write of an account document fails."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        key: str | None = None,
        original_error: Exception | None = None,
    ):
        """Initialize the operation error.

        Args:
            message: The error message
            operation: The S3 operation that failed (e.g., 'put_object')
            key: The S3 key involved in the operation
            original_error: The original exception
        """
        self.operation = operation
        self.key = key
        self.original_error = original_error

        hint = None
        if "NoSuchBucket" in message:
            hint = "The account bucket does not exist. Run `laundry-auth init-bucket`."
        elif "AccessDenied" in message:
            hint = "Check your IAM permissions for this operation."

        super().__init__(message, hint)


class ConfigurationError(LaundryAuthError):
    """Raised when laundry-auth configuration is invalid."""

    def __init__(
        self,
        message: str | None = None,
        missing_fields: list[str] | None = None,
    ):
        self.missing_fields = missing_fields or []

        if missing_fields:
            message = f"Missing required configuration: {', '.join(missing_fields)}"
            hint = "Set these as environment variables or in your .env file."
        else:
            hint = "Check your laundry-auth configuration."

        super().__init__(message or "Invalid laundry-auth configuration", hint)


class InputValidationError(LaundryAuthError):
    """Raised when caller-supplied input is missing or malformed."""

    def __init__(self, message: str, field: str | None = None):
        """Initialize the validation error.

        Args:
            message: The error message
            field: The field that failed validation
        """
        self.field = field
        hint = f"Check the value for field '{field}'." if field else None
        super().__init__(message, hint)


class PasswordTooShortError(InputValidationError):
    """Raised when a new password is below the minimum length."""

    def __init__(self, min_length: int, field: str = "password"):
        self.min_length = min_length
        label = "New password" if field == "new_password" else "Password"
        super().__init__(
            f"{label} must be at least {min_length} characters long", field=field
        )


class DuplicateKeyError(InputValidationError):
    """Raised when a username or email is already taken."""

    def __init__(self, field: str):
        super().__init__("Username or email already exists", field=field)


class AccountNotFoundError(LaundryAuthError):
    """Raised when an account document does not exist."""

    def __init__(self, account_id: str | None = None):
        self.account_id = account_id
        super().__init__("Account not found")


class SetupAlreadyCompleteError(LaundryAuthError):
    """Raised when initial setup is attempted after an account exists."""

    def __init__(self):
        super().__init__(
            "Setup already completed",
            "Log in with the existing administrator account.",
        )


class AuthError(LaundryAuthError):
    """Base class for authentication failures (HTTP 401)."""

    error_code = "authentication_error"


class InvalidCredentialsError(AuthError):
    """Generic login failure.

    Used for unknown accounts and wrong passwords alike so responses never
    reveal whether a username exists.
    """

    error_code = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message, "Check your username and password.")


class InvalidTokenError(AuthError):
    """Generic token/session failure (expired, tampered, revoked, wrong device)."""

    error_code = "invalid_token"

    def __init__(self):
        super().__init__(
            "Invalid token",
            "Log in again to obtain a new token.",
        )


class AccountLockedError(LaundryAuthError):
    """Raised when login is attempted on a temporarily locked account."""

    def __init__(self, remaining_minutes: int):
        self.remaining_minutes = remaining_minutes
        super().__init__(
            f"Account locked. Try again in {remaining_minutes} minutes.",
            "Too many failed login attempts.",
        )


class SessionError(LaundryAuthError):
    """Base class for session validation failures."""


class SessionNotFoundError(SessionError):
    """No active session with the given id."""

    def __init__(self):
        super().__init__("Session not found or inactive")


class SessionExpiredError(SessionError):
    """The session has been idle longer than the session TTL."""

    def __init__(self):
        super().__init__("Session expired")


class FingerprintMismatchError(SessionError):
    """The request's device fingerprint differs from the session's."""

    def __init__(self):
        super().__init__("Device fingerprint does not match session")


class RateLimitError(LaundryAuthError):
    """Raised when rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Too many requests",
        retry_after: int | None = None,
    ):
        """Initialize the rate limit error.

        Args:
            message: The error message
            retry_after: Seconds until the rate limit resets
        """
        self.retry_after = retry_after

        if retry_after:
            hint = f"Try again in {retry_after} seconds."
        else:
            hint = "Please wait before making more requests."

        super().__init__(message, hint)
