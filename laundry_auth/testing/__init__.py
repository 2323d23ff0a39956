"""Testing utilities for laundry-auth.

Usage in conftest.py:
    from laundry_auth.testing import InMemoryS3, MutableClock, create_test_settings

Or use provided fixtures directly:
    pytest_plugins = ["laundry_auth.testing.fixtures"]
"""

from laundry_auth.testing.mocks import InMemoryS3, mock_s3_client
from laundry_auth.testing.utils import MutableClock, create_test_settings

__all__ = [
    "InMemoryS3",
    "mock_s3_client",
    "MutableClock",
    "create_test_settings",
]
