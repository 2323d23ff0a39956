"""S3-backed persistence for account documents."""

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime

from botocore.exceptions import ClientError
from pydantic import ValidationError

from laundry_auth.auth.models import Account, utc_now
from laundry_auth.core.client import S3ClientProtocol
from laundry_auth.core.exceptions import (
    AccountNotFoundError,
    DuplicateKeyError,
    StorageOperationError,
)

logger = logging.getLogger(__name__)


class AccountStore:
    """Stores each account as one JSON object under ``{base_path}accounts/``.

    S3 offers no conditional per-document update, so every
    read-modify-write of an account must run while holding
    ``lock(account_id)``. Inserts are serialized by a store-wide lock so
    the uniqueness check and the write happen atomically in-process.
    """

    def __init__(
        self,
        bucket_name: str,
        base_path: str = "laundry-auth/",
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the store.

        Args:
            bucket_name: S3 bucket holding account documents
            base_path: Key prefix inside the bucket
            clock: Source of the current UTC time for ``updated_at``
        """
        self.bucket_name = bucket_name
        self.prefix = f"{base_path}accounts/"
        self.clock = clock
        self._locks: defaultdict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._insert_lock = asyncio.Lock()

    def _key(self, account_id: uuid.UUID) -> str:
        return f"{self.prefix}{account_id}.json"

    def lock(self, account_id: uuid.UUID) -> asyncio.Lock:
        """Return the mutex guarding mutations of one account."""
        return self._locks[account_id]

    @property
    def insert_lock(self) -> asyncio.Lock:
        """Mutex serializing account creation."""
        return self._insert_lock

    async def get(
        self, s3_client: S3ClientProtocol, account_id: uuid.UUID
    ) -> Account | None:
        """Load an account by id.

        Args:
            s3_client: The S3 client to use
            account_id: The account id

        Returns:
            The account, or None if no document exists

        Raises:
            StorageOperationError: For any failure other than a missing key,
                including a document that is not a valid account
        """
        key = self._key(account_id)
        try:
            response = await s3_client.get_object(Bucket=self.bucket_name, Key=key)
            body = await response["Body"].read()
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                return None
            raise StorageOperationError(
                f"Failed to read account: {e}",
                operation="get_object",
                key=key,
                original_error=e,
            ) from e
        try:
            return Account.model_validate_json(body)
        except ValidationError as e:
            raise StorageOperationError(
                f"Corrupt account document {key}",
                operation="get_object",
                key=key,
                original_error=e,
            ) from e

    async def require(
        self, s3_client: S3ClientProtocol, account_id: uuid.UUID
    ) -> Account:
        """Load an account by id, raising if it does not exist."""
        account = await self.get(s3_client, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    async def save(self, s3_client: S3ClientProtocol, account: Account) -> Account:
        """Write the whole account document back to S3."""
        account.updated_at = self.clock()
        key = self._key(account.id)
        try:
            await s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=account.model_dump_json().encode("utf-8"),
                ContentType="application/json",
            )
        except ClientError as e:
            raise StorageOperationError(
                f"Failed to write account: {e}",
                operation="put_object",
                key=key,
                original_error=e,
            ) from e
        return account

    async def list_all(self, s3_client: S3ClientProtocol) -> list[Account]:
        """Load every account document, following list pagination."""
        accounts: list[Account] = []
        kwargs = {"Bucket": self.bucket_name, "Prefix": self.prefix}
        while True:
            try:
                response = await s3_client.list_objects_v2(**kwargs)
            except ClientError as e:
                raise StorageOperationError(
                    f"Failed to list accounts: {e}",
                    operation="list_objects_v2",
                    original_error=e,
                ) from e

            for obj in response.get("Contents", []):
                key = obj["Key"]
                if not key.endswith(".json"):
                    continue
                try:
                    account_id = uuid.UUID(key[len(self.prefix):-len(".json")])
                except ValueError:
                    logger.error("Skipping object with a non-account key: %s", key)
                    continue
                try:
                    account = await self.get(s3_client, account_id)
                except StorageOperationError as e:
                    if not isinstance(e.original_error, ValidationError):
                        raise
                    logger.error("Skipping corrupt account document %s", key)
                    continue
                # Deleted between list and get
                if account is not None:
                    accounts.append(account)

            if not response.get("IsTruncated"):
                return accounts
            kwargs["ContinuationToken"] = response["NextContinuationToken"]

    async def count_active(self, s3_client: S3ClientProtocol) -> int:
        """Number of accounts that can still authenticate."""
        return sum(1 for a in await self.list_all(s3_client) if a.is_active)

    async def find_by_login(
        self, s3_client: S3ClientProtocol, identifier: str
    ) -> Account | None:
        """Find an active account by username or email."""
        for account in await self.list_all(s3_client):
            if account.is_active and account.matches_login(identifier):
                return account
        return None

    async def insert(self, s3_client: S3ClientProtocol, account: Account) -> Account:
        """Persist a new account after checking username/email uniqueness.

        Callers that need a wider atomic section (e.g. initial setup) hold
        ``insert_lock`` themselves and call ``insert_unlocked``.

        Raises:
            DuplicateKeyError: If the username or email is already taken
        """
        async with self._insert_lock:
            return await self.insert_unlocked(s3_client, account)

    async def insert_unlocked(
        self, s3_client: S3ClientProtocol, account: Account
    ) -> Account:
        """``insert`` for callers already holding ``insert_lock``."""
        for existing in await self.list_all(s3_client):
            if existing.username == account.username:
                raise DuplicateKeyError("username")
            if account.email and existing.email == account.email:
                raise DuplicateKeyError("email")
        logger.debug("Inserting account %s", account.id)
        return await self.save(s3_client, account)
