# dependencies.py

from fastapi import Request

from models.settings import ServerSettings
from policy_store import PolicyStore
from sync_engine import SyncEngine


def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


def get_policy_store(request: Request) -> PolicyStore:
    return request.app.state.policy_store


def get_sync_engine(request: Request) -> SyncEngine:
    return request.app.state.sync_engine
