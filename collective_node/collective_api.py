from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import admin, governance, health, pool
from .config import Settings, configure_logging, load_config
from .executor import PoolExecutor, build_executor

log = logging.getLogger(__name__)


def _executor_factory(settings: Optional[Settings]):
    def build() -> PoolExecutor:
        cfg = settings or load_config()
        configure_logging(cfg)
        ex = build_executor(cfg, repo_root=os.getcwd())
        log.info("executor attached for pool %s", ex.pool.account)
        return ex

    return build


def create_app(
    executor: Optional[PoolExecutor] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Wire routers around one PoolExecutor. Without an explicit executor
    one is built from config on the first request, so importing this
    module never touches the data directory.
    """
    app = FastAPI(title="Collective Stake Pool API")

    # CORS: tighten in prod if needed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.executor = executor
    app.state.executor_factory = None if executor is not None else _executor_factory(settings)

    # Routers
    app.include_router(health.router)
    app.include_router(pool.router)
    app.include_router(governance.router)
    app.include_router(admin.router)
    app.include_router(admin.staking_router)

    return app


app = create_app()
