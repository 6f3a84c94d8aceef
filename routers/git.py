# routers/git.py

import asyncio
import logging

from fastapi import APIRouter, Depends, Request, Response, status
from starlette.requests import ClientDisconnect

from authenticator import authenticate
from dependencies import get_policy_store, get_settings, get_sync_engine
from errors import AuthenticationError, RequestFormatError, SyncError
from models.settings import ServerSettings
from policy_store import PolicyStore
from sync_engine import SyncEngine

router = APIRouter()
logger = logging.getLogger(__name__)


async def _body_chunks(request: Request):
    try:
        async for chunk in request.stream():
            yield chunk
    except ClientDisconnect as e:
        raise ConnectionError("Client disconnected while sending the body.") from e


@router.post("/{repo_name}", summary="Repository Sync Webhook", status_code=status.HTTP_200_OK)
async def handle_webhook(
        repo_name: str,
        request: Request,
        settings: ServerSettings = Depends(get_settings),
        store: PolicyStore = Depends(get_policy_store),
        engine: SyncEngine = Depends(get_sync_engine),
):
    logger.info(f"Webhook endpoint was called for '{repo_name}'.")

    try:
        authenticated = await authenticate(
            repo_name,
            request.headers,
            _body_chunks(request),
            store,
            max_body_size=settings.max_body_size,
        )
    except RequestFormatError as e:
        logger.error(f"Malformed webhook request: {e}")
        return Response(status_code=status.HTTP_400_BAD_REQUEST)
    except AuthenticationError as e:
        # Every authentication failure looks the same from outside.
        logger.warning(f"Rejected webhook for '{repo_name}': {e.reason}")
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    policy = authenticated.policy
    logger.info(f"Authenticated {policy.event.value} event for {policy.full_repo_name}.")

    loop = asyncio.get_running_loop()
    try:
        # Run the blocking git work in an executor to avoid blocking the event loop.
        result = await loop.run_in_executor(None, engine.execute, policy.action)
    except SyncError as e:
        logger.error(f"Action for {policy.full_repo_name} failed: {type(e).__name__}: {e}")
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info(f"Action for {policy.full_repo_name} completed: {result.outcome.value} at {result.commit}.")
    return Response(status_code=status.HTTP_200_OK)
