# collective_node/__main__.py
"""
Entry point for running the pool node as a module:
    python -m collective_node [--host 127.0.0.1] [--port 8000]
                              [--config collective_config.yaml] [--data-dir ./data]
Env toggles:
  COLLECTIVE_CONFIG=...       -> config file path
  COLLECTIVE_DATA_DIR=...     -> where pool_state.json is written
  COLLECTIVE_LOG_LEVEL=DEBUG  -> root log level
"""

from __future__ import annotations

import argparse
import logging
import os

import uvicorn

from .collective_api import create_app
from .config import configure_logging, load_config
from .executor import build_executor

log = logging.getLogger(__name__)


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="collective-node",
        description="Run the collective staking pool API",
    )
    p.add_argument("--host", default=None, help="Bind address (default: from config)")
    p.add_argument("--port", type=int, default=None, help="Port (default: from config)")
    p.add_argument(
        "--config",
        default=os.environ.get("COLLECTIVE_CONFIG"),
        help="Path to YAML config",
    )
    p.add_argument("--data-dir", default=None, help="Override persistence.data_dir")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    settings = load_config(path=args.config)
    if args.data_dir:
        settings.persistence.data_dir = args.data_dir
    configure_logging(settings)

    executor = build_executor(settings, repo_root=os.getcwd())
    app = create_app(executor=executor, settings=settings)

    host = args.host or settings.server.host
    port = args.port or settings.server.port
    log.info("serving pool %s on %s:%d", executor.pool.account, host, port)
    uvicorn.run(app, host=host, port=port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
