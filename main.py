# main.py

import logging
import sys

import uvicorn
from fastapi import FastAPI

from config import load_config, load_settings
from errors import ConfigError
from logging_config import setup_logging
from models.settings import ServerSettings
from policy_store import PolicyStore
from sync_engine import SyncEngine

# Routers
from routers.git import router as git_router
from routers.health import router as health_router

logger = logging.getLogger(__name__)


def create_app(settings: ServerSettings, store: PolicyStore, engine: SyncEngine = None) -> FastAPI:
    """Build the application and mount each configured module."""
    app = FastAPI(
        title="HookSync",
        description="Webhook-triggered git synchronization of local repository mirrors",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.policy_store = store
    app.state.sync_engine = engine or SyncEngine.from_settings(settings.sync)

    app.include_router(health_router, prefix=settings.prepend_url_base(""))
    for module in settings.modules:
        prefix = settings.prepend_url_base(module.mount_path).rstrip("/")
        logger.info(f"Mounting {module.kind} module at '{prefix or '/'}'")
        app.include_router(git_router, prefix=prefix)
    return app


def build_app(config_path: str = None) -> FastAPI:
    config = load_config(config_path)
    settings = load_settings(config)
    setup_logging(settings.debug)
    store = PolicyStore.load(config)
    if settings.modules and not len(store):
        raise ConfigError("A git module is mounted but no policies are configured.")
    for policy in store:
        logger.info(
            f"Policy: {policy.full_repo_name} ({policy.service.value}, {policy.event.value}) "
            f"-> {policy.action.kind} {policy.action.remote}/{policy.action.branch} into {policy.action.path}"
        )
    return create_app(settings, store)


def run():
    # Initialize logging once; level is adjusted after the config is read.
    setup_logging()
    logger.info("Starting the HookSync application...")
    try:
        app = build_app()
    except ConfigError as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    settings = app.state.settings
    uvicorn.run(app, host=settings.address, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
