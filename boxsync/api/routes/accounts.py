"""
Payment account routes.

Registration is served through the registration queue: the route enqueues
the request, waits briefly for a worker, and answers 202 with the job
status when the account is not there yet. Boxes may repeat the same POST
as often as they like; only one account is ever created.
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from boxsync.accounts import AccountService
from boxsync.api.auth import CurrentBox
from boxsync.api.errors import as_http_500
from boxsync.config import get_settings
from boxsync.constants import API_V1_PREFIX
from boxsync.errors import BoxSyncError
from boxsync.types.api import AccountResponse, CreateAccountRequest, ErrorResponse, JobResponse
from boxsync.types.job import JobSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=f"{API_V1_PREFIX}/accounts",
    tags=["Accounts"],
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


def _pending(snapshot: JobSnapshot) -> JSONResponse:
    body = JobResponse.model_validate(snapshot.model_dump())
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=body.model_dump(mode="json"),
    )


@router.post(
    "",
    response_model=AccountResponse,
    responses={202: {"model": JobResponse, "description": "Registration still pending"}},
    summary="Register a payment account",
    description="Idempotently register an account. The account id is the idempotency key.",
)
async def create_account(
    request: CreateAccountRequest,
    current_box: CurrentBox,
):
    """
    Register a payment account for the calling box.

    Args:
        request: The account record; ``id`` is required.
        current_box: Authenticated box context.

    Returns:
        The account record, or 202 with the registration status.
    """
    settings = get_settings()
    service = AccountService()

    try:
        result = await service.register(
            account_id=request.id,
            box_id=current_box.box_id,
            fields=request.record_fields(),
            wait_seconds=settings.account_registration_wait_seconds,
        )
    except BoxSyncError:
        raise
    except Exception as e:
        raise as_http_500(e)

    if isinstance(result, JobSnapshot):
        logger.info("Registration pending", extra={"account_id": request.id})
        return _pending(result)
    return result


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    responses={202: {"model": JobResponse, "description": "Registration still pending"}},
    summary="Get a payment account",
)
async def get_account(account_id: str, current_box: CurrentBox):
    """
    Get an account, or its registration status while pending.

    Args:
        account_id: The account id.
        current_box: Authenticated box context.
    """
    try:
        result = await AccountService().get(account_id, current_box.box_id)
    except BoxSyncError:
        raise
    except Exception as e:
        raise as_http_500(e)

    if isinstance(result, JobSnapshot):
        return _pending(result)
    return result


@router.put(
    "/{account_id}/verify",
    response_model=AccountResponse,
    summary="Verify a payment account",
    description="Mark an account VERIFIED. Repeating the call returns the same record.",
)
async def verify_account(account_id: str, current_box: CurrentBox) -> AccountResponse:
    """
    Verify an account owned by the calling box.

    Args:
        account_id: The account id.
        current_box: Authenticated box context.

    Returns:
        The verified account.
    """
    try:
        return await AccountService().verify(account_id, current_box.box_id)
    except BoxSyncError:
        raise
    except Exception as e:
        raise as_http_500(e)
