"""
Credential API Routes

POST /api/credentials/github/connect - Store the caller's GitHub token
POST /api/credentials/github/disconnect - Forget the caller's GitHub token

The token is checked on the next sync: a rejected token ends that run with
``access_revoked``.
"""

import logging

from fastapi import APIRouter, Depends, Header

from archlog.api.deps import Services, get_services
from archlog.models.api_responses import GitHubConnectRequest, GitHubConnectResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/credentials/github/connect", response_model=GitHubConnectResponse)
async def connect_github(
    request: GitHubConnectRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    services.vault.set_token(user_id, request.token.strip())
    logger.info(f"GitHub token stored for user {user_id}")
    return GitHubConnectResponse(success=True, message="GitHub token stored")


@router.post("/credentials/github/disconnect", response_model=GitHubConnectResponse)
async def disconnect_github(
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    """Remove the stored token. Later syncs of the user's repositories fail with access_revoked."""
    services.vault.remove_token(user_id)
    logger.info(f"GitHub token cleared for user {user_id}")
    return GitHubConnectResponse(success=True, message="Disconnected from GitHub")
