"""Audit Log: capped per-account security history and its background writer."""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from laundry_auth.auth.models import Account, AuditLogEntry, utc_now
from laundry_auth.auth.store import AccountStore
from laundry_auth.core.client import S3ClientProtocol
from laundry_auth.core.exceptions import LaundryAuthError

logger = logging.getLogger(__name__)


class AuditAction:
    """Action tags written to the audit log."""

    INITIAL_SETUP = "INITIAL_SETUP"
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    NEW_DEVICE = "NEW_DEVICE"
    LOGOUT = "LOGOUT"
    LOGOUT_ALL = "LOGOUT_ALL"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PASSWORD_CHANGE_FAILED = "PASSWORD_CHANGE_FAILED"


class AuditLog:
    """Appends entries to an account, keeping only the most recent ones."""

    def __init__(self, limit: int = 100, clock: Callable[[], datetime] = utc_now):
        self.limit = limit
        self.clock = clock

    def append(
        self,
        account: Account,
        action: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> AuditLogEntry:
        """Push an entry and drop the oldest ones beyond the limit."""
        entry = AuditLogEntry(
            action=action,
            timestamp=timestamp or self.clock(),
            ip_address=ip_address,
            user_agent=user_agent,
            details=details or {},
        )
        account.audit_log.append(entry)
        if len(account.audit_log) > self.limit:
            account.audit_log = account.audit_log[-self.limit:]
        return entry


@dataclass
class PendingAuditEntry:
    """An audit entry waiting to be applied to its account document."""

    s3_client: S3ClientProtocol
    account_id: uuid.UUID
    action: str
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)


class AuditWriter:
    """Best-effort audit sink kept off the authentication critical path.

    Entries are queued and applied by a single background task. Each write
    loads the account under its lock, appends, caps and saves. When the
    writer is not running (CLI, unit tests) or the queue is full, the
    entry is written inline instead. A failed write is logged and dropped;
    it never propagates to the operation that produced it.

    Callers must not hold the account lock when calling ``record``.
    """

    def __init__(
        self,
        store: AccountStore,
        audit_log: AuditLog,
        max_queue_size: int = 1000,
    ):
        """Initialize the writer.

        Args:
            store: Account persistence
            audit_log: Append/cap policy
            max_queue_size: Maximum number of entries to buffer
        """
        self.store = store
        self.audit_log = audit_log
        self.max_queue_size = max_queue_size
        self._queue: asyncio.Queue[PendingAuditEntry | None] | None = None
        self._task: asyncio.Task | None = None
        self.entries_written = 0
        self.entries_failed = 0
        self.sync_fallback_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background task on the running event loop."""
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._task = asyncio.create_task(self._run(), name="audit-writer")
        logger.info("Background audit writer started")

    async def stop(self) -> None:
        """Drain pending entries and stop the background task."""
        if not self.running:
            return
        await self._queue.put(None)
        await self._task
        self._task = None
        self._queue = None
        logger.info(
            "Audit writer stopped. Written: %d, failed: %d, sync fallbacks: %d",
            self.entries_written,
            self.entries_failed,
            self.sync_fallback_count,
        )

    async def flush(self) -> None:
        """Wait until every queued entry has been applied."""
        if self.running:
            await self._queue.join()

    async def record(
        self,
        s3_client: S3ClientProtocol,
        account_id: uuid.UUID,
        action: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Queue an audit entry for ``account_id``."""
        pending = PendingAuditEntry(
            s3_client=s3_client,
            account_id=account_id,
            action=action,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details or {},
            timestamp=self.audit_log.clock(),
        )
        if self.running:
            try:
                self._queue.put_nowait(pending)
                return
            except asyncio.QueueFull:
                self.sync_fallback_count += 1
                logger.warning("Audit queue full, writing synchronously")
        await self._write(pending)

    async def _run(self) -> None:
        while True:
            pending = await self._queue.get()
            try:
                if pending is None:
                    return
                await self._write(pending)
            finally:
                self._queue.task_done()

    async def _write(self, pending: PendingAuditEntry) -> None:
        try:
            async with self.store.lock(pending.account_id):
                account = await self.store.require(pending.s3_client, pending.account_id)
                self.audit_log.append(
                    account,
                    pending.action,
                    ip_address=pending.ip_address,
                    user_agent=pending.user_agent,
                    details=pending.details,
                    timestamp=pending.timestamp,
                )
                await self.store.save(pending.s3_client, account)
            self.entries_written += 1
        except LaundryAuthError as e:
            self.entries_failed += 1
            logger.error(
                "Failed to write audit entry %s for %s: %s",
                pending.action,
                pending.account_id,
                e.message,
            )
        except Exception as e:
            self.entries_failed += 1
            logger.error("Unexpected error writing audit entry %s: %s", pending.action, e)
