"""
Token endpoint for boxes.
"""

from fastapi import APIRouter

from boxsync.api.auth import issue_token
from boxsync.types.api import AuthRequest, TokenResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/token",
    response_model=TokenResponse,
    summary="Get access token",
    description="Exchange a box API key for a bearer token scoped to the box.",
    responses={401: {"description": "Invalid API key"}},
)
async def get_token(request: AuthRequest) -> TokenResponse:
    return issue_token(request.api_key, request.box_id)
