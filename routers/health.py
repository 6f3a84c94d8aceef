# routers/health.py

from fastapi import APIRouter, Depends
import logging

from dependencies import get_policy_store
from policy_store import PolicyStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", summary="Health Check Endpoint")
def health_check(store: PolicyStore = Depends(get_policy_store)):
    logger.debug("Health check endpoint was called.")
    return {"status": "OK", "policies": len(store)}
