"""S3 client manager for the account document store."""

import logging
from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Protocol, runtime_checkable

from aiobotocore.client import AioBaseClient
from aiobotocore.session import get_session
from botocore.config import Config
from botocore.exceptions import ClientError

from laundry_auth.core.exceptions import StorageConnectionError, StorageOperationError
from laundry_auth.core.settings import LaundryAuthSettings

logger = logging.getLogger(__name__)


@runtime_checkable
class S3ClientProtocol(Protocol):
    """The subset of the S3 API the account store relies on."""

    async def get_object(self, Bucket: str, Key: str, **kwargs) -> dict[str, Any]:
        """Get an object from S3."""
        ...

    async def put_object(
        self, Bucket: str, Key: str, Body: bytes | str, **kwargs
    ) -> dict[str, Any]:
        """Put an object to S3."""
        ...

    async def delete_object(self, Bucket: str, Key: str, **kwargs) -> dict[str, Any]:
        """Delete an object from S3."""
        ...

    async def list_objects_v2(self, Bucket: str, **kwargs) -> dict[str, Any]:
        """List objects in S3."""
        ...

    async def head_bucket(self, Bucket: str, **kwargs) -> dict[str, Any]:
        """Check that a bucket exists."""
        ...

    async def create_bucket(self, Bucket: str, **kwargs) -> dict[str, Any]:
        """Create a bucket."""
        ...


def adjust_endpoint_url(
    endpoint_url: str | None, bucket_name: str | None
) -> str | None:
    """Strip a virtual-host bucket prefix so path-style addressing works.

    Args:
        endpoint_url: The S3 endpoint URL
        bucket_name: The S3 bucket name

    Returns:
        Adjusted endpoint URL or None
    """
    if not endpoint_url:
        return None
    if bucket_name and f"{bucket_name}." in endpoint_url:
        return endpoint_url.replace(f"{bucket_name}.", "")
    return endpoint_url


class S3ClientManager:
    """Creates aiobotocore S3 clients from laundry-auth settings.

    The API keeps one client open for the lifetime of the application
    (see ``laundry_auth.fastapi.app``); the CLI opens one per command.
    """

    def __init__(self, settings: LaundryAuthSettings):
        self.settings = settings
        self._session = None
        self._endpoint_url = adjust_endpoint_url(
            settings.aws_url, settings.aws_bucket_name
        )
        self._client_config = Config(
            s3={"addressing_style": "path"},
            retries={
                "max_attempts": settings.aws_retry_attempts,
                "mode": "standard",
            },
        )

    @asynccontextmanager
    async def get_async_client(self) -> AsyncGenerator[AioBaseClient, None]:
        """Get an async S3 client within a context manager.

        Yields:
            An aiobotocore S3 client

        Raises:
            StorageConnectionError: If client creation fails
        """
        if self._session is None:
            self._session = get_session()

        async with AsyncExitStack() as stack:
            try:
                client = await stack.enter_async_context(
                    self._session.create_client(
                        "s3",
                        region_name=self.settings.aws_default_region,
                        aws_access_key_id=self.settings.aws_access_key_id,
                        aws_secret_access_key=self.settings.aws_secret_access_key,
                        endpoint_url=self._endpoint_url,
                        config=self._client_config,
                    )
                )
            except Exception as e:
                raise StorageConnectionError(
                    original_error=e,
                    endpoint=self._endpoint_url,
                ) from e
            yield client

    async def ensure_bucket_exists(self, s3_client: S3ClientProtocol) -> bool:
        """Ensure the configured bucket exists, creating it if necessary.

        Args:
            s3_client: The S3 client to use

        Returns:
            True if the bucket was created, False if it already existed

        Raises:
            StorageOperationError: If the bucket check or creation fails
        """
        bucket = self.settings.aws_bucket_name
        try:
            await s3_client.head_bucket(Bucket=bucket)
            return False
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code not in ("404", "NoSuchBucket", "NotFound"):
                raise StorageOperationError(
                    f"Error checking bucket: {e}",
                    operation="head_bucket",
                    original_error=e,
                ) from e

        try:
            await s3_client.create_bucket(Bucket=bucket)
        except ClientError as e:
            raise StorageOperationError(
                f"Failed to create bucket: {e}",
                operation="create_bucket",
                original_error=e,
            ) from e
        logger.info("Created bucket %s", bucket)
        return True
