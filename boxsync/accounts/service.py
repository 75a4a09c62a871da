"""
Payment account registration and verification.

Registration goes through the registration queue so that a box retrying
the same request never creates a second account. Verification is a direct
PENDING -> VERIFIED conditional transition; repeating it is a no-op.
"""

import logging
from typing import Any

from boxsync.constants import REGISTRATION_QUEUE, SPAN_VERIFY_ACCOUNT, AccountStatus, JobStatus
from boxsync.db import PaymentsAccount, StatusStore, get_session_context
from boxsync.errors import AccessDenied, Conflict, JobFailed, MaxAttemptsExceeded, NotFound
from boxsync.observability.metrics import get_metrics
from boxsync.observability.tracing import get_tracer
from boxsync.queue import JobQueue
from boxsync.queue.job_queue import SessionFactory
from boxsync.types.api import AccountResponse
from boxsync.types.job import JobSnapshot

logger = logging.getLogger(__name__)


def registration_payload(account_id: str, box_id: str, fields: dict[str, Any]) -> dict[str, Any]:
    """Job payload for the registration queue."""
    return {"account": {"id": account_id, "box_id": box_id, "meta": fields}}


def _raise_for_failed(snapshot: JobSnapshot) -> None:
    if snapshot.status != JobStatus.FAILED:
        return
    if snapshot.attempts >= snapshot.max_attempts:
        raise MaxAttemptsExceeded(f"Registration {snapshot.key} exhausted its attempts")
    raise JobFailed(f"Registration {snapshot.key} failed")


class AccountService:
    """Account operations on behalf of one authenticated box."""

    def __init__(
        self,
        session_factory: SessionFactory = get_session_context,
        queue: JobQueue | None = None,
    ):
        self._session_factory = session_factory
        self._queue = queue or JobQueue(REGISTRATION_QUEUE, session_factory=session_factory)

    async def register(
        self,
        account_id: str,
        box_id: str,
        fields: dict[str, Any],
        wait_seconds: float = 0.0,
    ) -> AccountResponse | JobSnapshot:
        """
        Enqueue a registration and wait briefly for a worker to process it.

        Args:
            account_id: Caller-assigned id, used as the idempotency key.
            box_id: The calling box.
            fields: Remaining fields of the account record.
            wait_seconds: How long to wait for the job to finish.

        Returns:
            The account record once registered, otherwise the job snapshot.

        Raises:
            InvalidArgument, QueueUnavailable: From the queue.
            JobFailed: The registration job is terminally FAILED.
            AccessDenied: The id is already registered by another box.
        """
        snapshot = await self._queue.enqueue(
            account_id, registration_payload(account_id, box_id, fields)
        )
        if not snapshot.is_terminal and wait_seconds > 0:
            snapshot = await self._queue.wait_for_terminal(account_id, wait_seconds)

        return await self._resolve(account_id, box_id, snapshot)

    async def get(self, account_id: str, box_id: str) -> AccountResponse | JobSnapshot:
        """
        Current state of an account, or of its registration while pending.

        Raises:
            NotFound: Neither an account nor a registration job exists.
            JobFailed: The registration job is terminally FAILED.
            AccessDenied: The account belongs to another box.
        """
        snapshot = await self._queue.get(account_id)
        return await self._resolve(account_id, box_id, snapshot)

    async def _resolve(
        self,
        account_id: str,
        box_id: str,
        snapshot: JobSnapshot | None,
    ) -> AccountResponse | JobSnapshot:
        async with self._session_factory() as session:
            account = await StatusStore(session).get_account(account_id)

        if account is not None:
            if account.box_id != box_id:
                raise AccessDenied(f"Account {account_id} belongs to another box")
            return AccountResponse.model_validate(account)

        if snapshot is None:
            raise NotFound(f"Account {account_id} not found")

        _raise_for_failed(snapshot)
        return snapshot

    async def verify(self, account_id: str, box_id: str) -> AccountResponse:
        """
        Mark an account VERIFIED.

        A second call finds the account already VERIFIED and returns it
        unchanged: the lost conditional transition is a benign no-op.

        Raises:
            NotFound: No such account.
            AccessDenied: The account belongs to another box.
        """
        with get_tracer().start_as_current_span(SPAN_VERIFY_ACCOUNT) as span:
            span.set_attribute("boxsync.account_id", account_id)

            async with self._session_factory() as session:
                store = StatusStore(session)
                applied = await store.compare_and_transition(
                    PaymentsAccount,
                    account_id,
                    AccountStatus.PENDING,
                    AccountStatus.VERIFIED,
                    PaymentsAccount.box_id == box_id,
                )
                account = await store.get_account(account_id)

                if account is None:
                    raise NotFound(f"Account {account_id} not found")
                if account.box_id != box_id:
                    raise AccessDenied(f"Account {account_id} belongs to another box")
                if not applied and account.status != AccountStatus.VERIFIED:
                    raise Conflict(f"Account {account_id} could not be verified")

                response = AccountResponse.model_validate(account)

        outcome = "verified" if applied else "already_verified"
        get_metrics().record_account_verified(outcome)
        logger.info("Account verification", extra={"account_id": account_id, "outcome": outcome})
        return response
