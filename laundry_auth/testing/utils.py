"""Testing utilities for laundry-auth."""

from datetime import datetime, timedelta

from laundry_auth.auth.models import utc_now
from laundry_auth.core.settings import LaundryAuthSettings


def create_test_settings(
    bucket_name: str = "test-bucket",
    base_path: str = "test/",
    secret_key: str = "test-secret-key-for-testing-only",
    **overrides
) -> LaundryAuthSettings:
    """Create laundry-auth settings for testing.

    Uses the cheapest bcrypt work factor so hashing doesn't dominate the
    test run, and never reads a ``.env`` file.

    Args:
        bucket_name: The S3 bucket name for tests
        base_path: The S3 base path for tests
        secret_key: JWT secret key for tests
        **overrides: Additional settings to override

    Returns:
        LaundryAuthSettings instance configured for testing
    """
    values = {
        "aws_bucket_name": bucket_name,
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "aws_default_region": "us-east-1",
        "aws_url": "http://localhost:4566",
        "secret_key": secret_key,
        "s3_base_path": base_path,
        "debug": True,
        "bcrypt_rounds": 4,
    }
    values.update(overrides)
    return LaundryAuthSettings(_env_file=None, **values)


class MutableClock:
    """A controllable UTC clock to pass wherever a ``clock`` is accepted.

    Starts at the real current time so tokens it stamps look plausible.

    Example:
        >>> clock = MutableClock()
        >>> service = AuthService(settings, clock=clock)
        >>> clock.advance(minutes=31)
    """

    def __init__(self, start: datetime | None = None):
        self.now = start or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        """Move forward by ``timedelta(**kwargs)`` and return the new time."""
        self.now += timedelta(**kwargs)
        return self.now
