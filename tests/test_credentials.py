"""Tests for the credential store and account persistence."""

import uuid
from datetime import datetime, timezone

import pytest

from laundry_auth.auth.credentials import CredentialStore, _truncate_for_bcrypt
from laundry_auth.auth.models import Account, Role
from laundry_auth.auth.store import AccountStore
from laundry_auth.core.exceptions import (
    AccountNotFoundError,
    DuplicateKeyError,
    InputValidationError,
    PasswordTooShortError,
    StorageOperationError,
)
from laundry_auth.testing.mocks import InMemoryS3
from laundry_auth.testing.utils import MutableClock

BUCKET = "test-bucket"


@pytest.fixture
def store():
    return AccountStore(BUCKET, "test/")


@pytest.fixture
def credentials(store):
    return CredentialStore(store, bcrypt_rounds=4)


class TestPasswordHashing:
    """Tests for hashing and verification."""

    def test_hash_is_not_plaintext(self, credentials):
        """Test that the stored hash never contains the password."""
        hashed = credentials.hash_password("Passw0rd!")
        assert "Passw0rd!" not in hashed
        assert hashed.startswith("$2")

    def test_hashes_are_salted(self, credentials):
        """Test that hashing the same password twice differs."""
        assert credentials.hash_password("Passw0rd!") != credentials.hash_password("Passw0rd!")

    @pytest.mark.asyncio
    async def test_verify_password(self, credentials):
        """Test verifying correct and incorrect candidates."""
        account = await credentials.build_account("owner", "Passw0rd!")

        assert await credentials.verify_password(account, "Passw0rd!") is True
        assert await credentials.verify_password(account, "passw0rd!") is False

    @pytest.mark.asyncio
    async def test_long_password_verifies(self, credentials):
        """Test passwords beyond bcrypt's 72-byte limit still verify."""
        password = "é" * 50
        account = await credentials.build_account("owner", password)
        assert await credentials.verify_password(account, password) is True

    def test_truncate_keeps_utf8_boundary(self):
        """Test truncation never splits a multi-byte character."""
        truncated = _truncate_for_bcrypt("é" * 50)
        assert len(truncated.encode("utf-8")) <= 72
        assert truncated == "é" * 36

    def test_truncate_drops_split_character(self):
        """Test a character cut in half by the limit is dropped."""
        assert _truncate_for_bcrypt("a" + "é" * 50) == "a" + "é" * 35

    def test_truncate_short_password_unchanged(self):
        """Test short passwords are left alone."""
        assert _truncate_for_bcrypt("Passw0rd!") == "Passw0rd!"

    @pytest.mark.asyncio
    async def test_burn_verification_completes(self, credentials):
        """Test the unknown-account path runs without error."""
        await credentials.burn_verification("anything")


class TestBuildAccount:
    """Tests for input validation when building accounts."""

    @pytest.mark.asyncio
    async def test_builds_admin_by_default(self, credentials):
        """Test a valid account is built with the admin role."""
        account = await credentials.build_account("owner", "Passw0rd!", "Owner@LaundryShop.com")

        assert account.username == "owner"
        assert account.email == "owner@laundryshop.com"
        assert account.role == Role.ADMIN
        assert account.security_settings.last_password_change is not None

    @pytest.mark.asyncio
    async def test_missing_username(self, credentials):
        """Test a blank username is rejected."""
        with pytest.raises(InputValidationError) as exc_info:
            await credentials.build_account("  ", "Passw0rd!")
        assert exc_info.value.message == "Username and password are required"

    @pytest.mark.asyncio
    async def test_missing_password(self, credentials):
        """Test an empty password is rejected."""
        with pytest.raises(InputValidationError):
            await credentials.build_account("owner", "")

    @pytest.mark.asyncio
    async def test_short_password(self, credentials):
        """Test passwords under eight characters are rejected."""
        with pytest.raises(PasswordTooShortError) as exc_info:
            await credentials.build_account("owner", "short")

        assert exc_info.value.field == "password"
        assert exc_info.value.message == "Password must be at least 8 characters long"

    @pytest.mark.asyncio
    async def test_short_username(self, credentials):
        """Test usernames under three characters are rejected."""
        with pytest.raises(InputValidationError) as exc_info:
            await credentials.build_account("ab", "Passw0rd!")
        assert exc_info.value.field == "username"

    @pytest.mark.asyncio
    async def test_padded_short_username(self, credentials):
        """Test the length limit applies after surrounding whitespace is stripped."""
        with pytest.raises(InputValidationError) as exc_info:
            await credentials.build_account("  ab  ", "Passw0rd!")
        assert exc_info.value.field == "username"

    @pytest.mark.asyncio
    async def test_username_is_stripped(self, credentials):
        """Test surrounding whitespace is removed from valid usernames."""
        account = await credentials.build_account("  owner  ", "Passw0rd!")
        assert account.username == "owner"

    @pytest.mark.asyncio
    async def test_timestamps_follow_clock(self, store):
        """Test creation and password-change times come from the given clock."""
        clock = MutableClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        credentials = CredentialStore(store, bcrypt_rounds=4, clock=clock)

        account = await credentials.build_account("owner", "Passw0rd!")
        assert account.created_at == clock()
        assert account.security_settings.last_password_change == clock()

        clock.advance(days=3)
        await credentials.change_password(account, "N3wPassword")
        assert account.security_settings.last_password_change == clock()

    @pytest.mark.asyncio
    async def test_invalid_email(self, credentials):
        """Test a malformed email is rejected."""
        with pytest.raises(InputValidationError) as exc_info:
            await credentials.build_account("owner", "Passw0rd!", "not-an-email")
        assert exc_info.value.field == "email"

    @pytest.mark.asyncio
    async def test_blank_email_becomes_none(self, credentials):
        """Test an empty email is stored as no email."""
        account = await credentials.build_account("owner", "Passw0rd!", "  ")
        assert account.email is None


class TestCreateAndFind:
    """Tests for persisting and looking up accounts."""

    @pytest.mark.asyncio
    async def test_create_persists_document(self, credentials):
        """Test the account is written as one JSON document."""
        s3 = InMemoryS3()
        account = await credentials.create_account(s3, "owner", "Passw0rd!")

        data = s3.get_bucket_data(BUCKET)
        assert list(data) == [f"test/accounts/{account.id}.json"]
        assert data[f"test/accounts/{account.id}.json"]["username"] == "owner"
        assert "Passw0rd!" not in str(data)

    @pytest.mark.asyncio
    async def test_duplicate_username(self, credentials):
        """Test a second account with the same username is rejected."""
        s3 = InMemoryS3()
        await credentials.create_account(s3, "owner", "Passw0rd!")

        with pytest.raises(DuplicateKeyError) as exc_info:
            await credentials.create_account(s3, "owner", "An0therPass")

        assert exc_info.value.field == "username"
        assert exc_info.value.message == "Username or email already exists"

    @pytest.mark.asyncio
    async def test_duplicate_email_case_insensitive(self, credentials):
        """Test emails are unique regardless of case."""
        s3 = InMemoryS3()
        await credentials.create_account(s3, "owner", "Passw0rd!", "owner@laundryshop.com")

        with pytest.raises(DuplicateKeyError) as exc_info:
            await credentials.create_account(
                s3, "manager", "Passw0rd!", "OWNER@laundryshop.com"
            )
        assert exc_info.value.field == "email"

    @pytest.mark.asyncio
    async def test_find_by_username_or_email(self, credentials):
        """Test lookup matches username exactly or email in any case."""
        s3 = InMemoryS3()
        created = await credentials.create_account(
            s3, "owner", "Passw0rd!", "owner@laundryshop.com"
        )

        by_name = await credentials.find_by_login(s3, " owner ")
        by_email = await credentials.find_by_login(s3, "Owner@LaundryShop.com")

        assert by_name.id == created.id
        assert by_email.id == created.id
        assert await credentials.find_by_login(s3, "nobody") is None

    @pytest.mark.asyncio
    async def test_inactive_accounts_not_found(self, credentials, store):
        """Test soft-deleted accounts cannot be looked up for login."""
        s3 = InMemoryS3()
        account = await credentials.create_account(s3, "owner", "Passw0rd!")
        account.is_active = False
        await store.save(s3, account)

        assert await credentials.find_by_login(s3, "owner") is None
        assert await store.count_active(s3) == 0

    @pytest.mark.asyncio
    async def test_change_password(self, credentials):
        """Test re-hashing replaces the old password."""
        account = await credentials.build_account("owner", "Passw0rd!")
        account.security_settings.password_change_required = True

        await credentials.change_password(account, "N3wPassword")

        assert await credentials.verify_password(account, "N3wPassword") is True
        assert await credentials.verify_password(account, "Passw0rd!") is False
        assert account.security_settings.password_change_required is False

    @pytest.mark.asyncio
    async def test_change_password_too_short(self, credentials):
        """Test a short new password is rejected with its own field."""
        account = await credentials.build_account("owner", "Passw0rd!")

        with pytest.raises(PasswordTooShortError) as exc_info:
            await credentials.change_password(account, "short")

        assert exc_info.value.field == "new_password"
        assert exc_info.value.message == "New password must be at least 8 characters long"


class TestAccountStore:
    """Tests for the S3 document store."""

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        """Test a missing document is not an error."""
        assert await store.get(InMemoryS3(), uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_require_missing_raises(self, store):
        """Test require raises for a missing document."""
        with pytest.raises(AccountNotFoundError):
            await store.require(InMemoryS3(), uuid.uuid4())

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        """Test a saved account loads back with its embedded lists."""
        s3 = InMemoryS3()
        account = Account(username="owner", hashed_password="x")
        await store.save(s3, account)

        loaded = await store.get(s3, account.id)
        assert loaded.username == "owner"
        assert loaded.sessions == []

    @pytest.mark.asyncio
    async def test_list_follows_pagination(self, store):
        """Test listing reads every page of keys."""
        s3 = InMemoryS3(page_size=2)
        for i in range(5):
            await store.save(s3, Account(username=f"user{i}", hashed_password="x"))

        accounts = await store.list_all(s3)
        assert sorted(a.username for a in accounts) == [f"user{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_storage_failure_raises(self, store):
        """Test S3 failures other than a missing key surface as storage errors."""
        s3 = InMemoryS3()
        s3.failing_operations.add("GetObject")

        with pytest.raises(StorageOperationError) as exc_info:
            await store.get(s3, uuid.uuid4())
        assert exc_info.value.operation == "get_object"

    @pytest.mark.asyncio
    async def test_save_failure_raises(self, store):
        """Test a failed write surfaces as a storage error."""
        s3 = InMemoryS3()
        s3.failing_operations.add("PutObject")

        with pytest.raises(StorageOperationError):
            await store.save(s3, Account(username="owner", hashed_password="x"))

    @pytest.mark.asyncio
    async def test_save_stamps_updated_at_from_clock(self):
        """Test the write time comes from the store's clock."""
        clock = MutableClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        store = AccountStore(BUCKET, "test/", clock=clock)
        account = Account(username="owner", hashed_password="x")

        await store.save(InMemoryS3(), account)

        assert account.updated_at == clock()

    @pytest.mark.asyncio
    async def test_corrupt_document_raises_storage_error(self, store):
        """Test an unreadable document is reported as a storage error."""
        s3 = InMemoryS3()
        account_id = uuid.uuid4()
        await s3.put_object(
            Bucket=BUCKET,
            Key=f"test/accounts/{account_id}.json",
            Body='{"id": "%s", "username": "ab", "hashed_password": "x"}' % account_id,
        )

        with pytest.raises(StorageOperationError) as exc_info:
            await store.get(s3, account_id)
        assert exc_info.value.operation == "get_object"

    @pytest.mark.asyncio
    async def test_bad_documents_do_not_hide_good_accounts(self, store, credentials):
        """Test a corrupt document or stray key is skipped when listing."""
        s3 = InMemoryS3()
        await credentials.create_account(s3, "owner", "Passw0rd!", "owner@example.com")
        await s3.put_object(
            Bucket=BUCKET, Key=f"test/accounts/{uuid.uuid4()}.json", Body="not json"
        )
        await s3.put_object(Bucket=BUCKET, Key="test/accounts/backup.json", Body="{}")

        found = await credentials.find_by_login(s3, "owner")

        assert found is not None
        assert found.email == "owner@example.com"
        assert await store.count_active(s3) == 1

    @pytest.mark.asyncio
    async def test_list_storage_failure_still_raises(self, store):
        """Test read failures other than bad documents are not skipped."""
        s3 = InMemoryS3()
        await store.save(s3, Account(username="owner", hashed_password="x"))
        s3.failing_operations.add("GetObject")

        with pytest.raises(StorageOperationError):
            await store.list_all(s3)
