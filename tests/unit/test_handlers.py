"""
Unit tests for job handlers.
"""

from datetime import timedelta
from uuid import uuid4

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from boxsync.constants import REGISTRATION_QUEUE, AccountStatus
from boxsync.db import StatusStore
from boxsync.errors import InvalidArgument
from boxsync.types.job import JobContext
from boxsync.utils.clock import utcnow
from boxsync.worker.handlers import (
    execute_job,
    get_handler,
    handle_registration,
    list_handlers,
    register_handler,
)


def make_context(key: str = "acct-42", payload: dict | None = None, queue: str = REGISTRATION_QUEUE) -> JobContext:
    if payload is None:
        payload = {"account": {"id": key, "box_id": "box-1", "meta": {"upi": "a@bank"}}}
    return JobContext(
        job_id=uuid4(),
        queue=queue,
        key=key,
        attempt=1,
        max_attempts=3,
        payload=payload,
        lease_owner="test-worker:0",
        lease_expires_at=utcnow() + timedelta(seconds=30),
    )


class TestHandlerRegistry:
    """Tests for the handler registry."""

    def test_registration_handler_registered(self):
        """Test that the registration queue has its handler."""
        assert REGISTRATION_QUEUE in list_handlers()
        assert get_handler(REGISTRATION_QUEUE) is handle_registration

    def test_get_handler_not_exists(self):
        """Test getting a handler for an unknown queue."""
        assert get_handler("nonexistent") is None


class TestRegistrationHandler:
    """Tests for the registration handler."""

    async def test_creates_pending_account(self, db_session: AsyncSession):
        """Test that a valid payload creates a PENDING account."""
        store = StatusStore(db_session)

        result = await handle_registration(make_context(), store)
        await db_session.commit()

        assert result.success is True
        assert result.output == {"account_id": "acct-42", "status": "pending"}

        account = await store.get_account("acct-42")
        assert account.box_id == "box-1"
        assert account.status == AccountStatus.PENDING
        assert account.meta == {"upi": "a@bank"}

    async def test_rerun_is_harmless(self, db_session: AsyncSession):
        """Test that re-executing the job does not duplicate the account."""
        store = StatusStore(db_session)

        await handle_registration(make_context(), store)
        result = await handle_registration(make_context(), store)
        await db_session.commit()

        assert result.success is True
        assert len(await store.list_accounts("box-1")) == 1

    async def test_invalid_payload_not_retryable(self, db_session: AsyncSession):
        """Test that a malformed payload fails permanently."""
        context = make_context(payload={"account": {"box_id": "box-1"}})

        result = await handle_registration(context, StatusStore(db_session))

        assert result.success is False
        assert result.retryable is False

    async def test_key_mismatch_not_retryable(self, db_session: AsyncSession):
        """Test that the payload id must match the job key."""
        context = make_context(
            key="acct-42",
            payload={"account": {"id": "acct-43", "box_id": "box-1"}},
        )

        result = await handle_registration(context, StatusStore(db_session))

        assert result.success is False
        assert result.retryable is False


class TestExecuteJob:
    """Tests for handler dispatch."""

    async def test_unknown_queue(self, db_session: AsyncSession):
        """Test that a job without a handler fails permanently."""
        result = await execute_job(make_context(queue="nonexistent"), StatusStore(db_session))

        assert result.success is False
        assert result.retryable is False
        assert "No handler registered" in result.error

    async def test_unexpected_exception_is_retryable(self, db_session: AsyncSession, temporary_handler):
        """Test that an unexpected handler exception is retried."""

        async def explode(context, store):
            raise RuntimeError("boom")

        temporary_handler("explode", explode)

        result = await execute_job(make_context(queue="explode"), StatusStore(db_session))

        assert result.success is False
        assert result.retryable is True
        assert "boom" in result.error

    async def test_storage_error_is_retryable(self, db_session: AsyncSession, temporary_handler):
        """Test that a storage outage inside a handler is retried."""

        async def storage_down(context, store):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        temporary_handler("storage-down", storage_down)

        result = await execute_job(make_context(queue="storage-down"), StatusStore(db_session))

        assert result.retryable is True

    async def test_invalid_argument_not_retryable(self, db_session: AsyncSession, temporary_handler):
        """Test that InvalidArgument from a handler is permanent."""

        async def reject(context, store):
            raise InvalidArgument("bad input")

        temporary_handler("reject", reject)

        result = await execute_job(make_context(queue="reject"), StatusStore(db_session))

        assert result.success is False
        assert result.retryable is False
