"""
Sync route: everything a box needs to rebuild its local projection.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boxsync.api.auth import CurrentBox
from boxsync.api.errors import as_http_500
from boxsync.constants import API_V1_PREFIX
from boxsync.db import StatusStore, get_async_session
from boxsync.types.api import AccountResponse, SyncResponse, TaskInfo
from boxsync.utils.clock import utcnow

router = APIRouter(prefix=API_V1_PREFIX, tags=["Sync"])


@router.get(
    "/sync",
    response_model=SyncResponse,
    summary="Pull box state",
    description="Tasks and accounts of the calling box with its total credits.",
)
async def sync(
    current_box: CurrentBox,
    session: AsyncSession = Depends(get_async_session),
) -> SyncResponse:
    """
    Return the full state of the calling box.

    Args:
        current_box: Authenticated box context.
        session: Database session.

    Returns:
        SyncResponse snapshot.
    """
    store = StatusStore(session)
    try:
        tasks = [TaskInfo.model_validate(task) for task in await store.list_tasks(current_box.box_id)]
        accounts = [
            AccountResponse.model_validate(account)
            for account in await store.list_accounts(current_box.box_id)
        ]
    except Exception as e:
        raise as_http_500(e)

    return SyncResponse(
        box_id=current_box.box_id,
        tasks=tasks,
        accounts=accounts,
        total_credits=sum(task.credits_earned for task in tasks),
        synced_at=utcnow(),
    )
