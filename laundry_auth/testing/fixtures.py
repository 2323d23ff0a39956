"""Pytest fixtures for laundry-auth testing.

To use these fixtures, add to your conftest.py:

    pytest_plugins = ["laundry_auth.testing.fixtures"]
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from laundry_auth.auth.service import AuthService
from laundry_auth.core.settings import LaundryAuthSettings
from laundry_auth.testing.mocks import InMemoryS3
from laundry_auth.testing.utils import MutableClock, create_test_settings


@pytest.fixture
def laundry_auth_settings() -> LaundryAuthSettings:
    """Provide test settings for laundry-auth."""
    return create_test_settings()


@pytest.fixture
def mock_s3() -> InMemoryS3:
    """Provide in-memory S3 mock."""
    s3 = InMemoryS3()
    yield s3
    s3.clear()


@pytest.fixture
def clock() -> MutableClock:
    """Provide a clock tests can move forward."""
    return MutableClock()


@pytest_asyncio.fixture
async def s3_client(
    mock_s3: InMemoryS3, laundry_auth_settings: LaundryAuthSettings
) -> AsyncGenerator[InMemoryS3, None]:
    """Provide the mock with the test bucket already created."""
    await mock_s3.create_bucket(Bucket=laundry_auth_settings.aws_bucket_name)
    yield mock_s3


@pytest.fixture
def auth_service(
    laundry_auth_settings: LaundryAuthSettings, clock: MutableClock
) -> AuthService:
    """Provide an auth service on the test settings and clock.

    Its audit writer is not started, so audit entries are written inline.
    """
    return AuthService(laundry_auth_settings, clock=clock)


@pytest.fixture
def laundry_auth_test_client(
    laundry_auth_settings: LaundryAuthSettings,
    mock_s3: InMemoryS3,
    clock: MutableClock,
):
    """Provide a TestClient for the API backed by the in-memory S3 mock."""
    from fastapi.testclient import TestClient

    from laundry_auth.fastapi.app import create_app

    app = create_app(settings=laundry_auth_settings, s3_client=mock_s3, clock=clock)
    with TestClient(app) as client:
        yield client
