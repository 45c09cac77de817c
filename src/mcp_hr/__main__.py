"""
Command-line entry point for the HR Consultant MCP Server.

Usage:
    mcp-hr [--config PATH] [--host HOST] [--port PORT] [--log-level LEVEL] [--debug]
    mcp-hr --seed

Exit codes:
    0: normal shutdown
    1: widget markup missing
    2: invalid configuration
"""

from __future__ import annotations

import asyncio
import sys

import uvicorn
import yaml
from pydantic import ValidationError

from mcp_hr.app import MCP_PATH, create_app
from mcp_hr.config import AppConfig, build_arg_parser, load_config
from mcp_hr.errors import WidgetAssetError
from mcp_hr.logging import get_logger, setup_logging
from mcp_hr.store import SQLiteEntityStore
from mcp_hr.widgets import WidgetRegistry

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_WIDGET_ASSETS = 1
EXIT_CONFIG = 2


async def seed(config: AppConfig) -> int:
    """Load the JSON seed files into the entity store."""
    store = SQLiteEntityStore(config.storage.db_path)
    counts = await store.seed_from_directory(config.storage.seed_dir)
    logger.info(
        "Entity store seeded",
        extra={"db_path": config.storage.db_path, "counts": counts},
    )
    return EXIT_OK


async def serve(config: AppConfig) -> int:
    """Load widgets, then run the HTTP server until shutdown."""
    base_url = config.server.resolved_base_url()
    widgets = WidgetRegistry(config.widgets.assets_dir, base_url=base_url)
    try:
        await widgets.load()
    except WidgetAssetError as e:
        logger.error(
            "Widget markup missing, refusing to start",
            extra={"widget_id": e.widget_id, "assets_dir": e.assets_dir, "error": str(e)},
        )
        return EXIT_WIDGET_ASSETS

    store = SQLiteEntityStore(config.storage.db_path)
    app = create_app(config, widgets=widgets, store=store)

    logger.info(
        "HR Consultant MCP Server starting",
        extra={
            "endpoint": f"http://{config.server.host}:{config.server.port}{MCP_PATH}",
            "public_url": f"{base_url}{MCP_PATH}",
            "assets_dir": config.widgets.assets_dir,
            "db_path": config.storage.db_path,
        },
    )

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.server.host,
            port=config.server.port,
            log_level=config.server.log_level,
            log_config=None,
        )
    )
    await server.serve()
    logger.info("HR Consultant MCP Server stopped")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """
    Run the server, or seed the store with ``--seed``.

    Args:
        argv: Command-line arguments. If None, uses sys.argv.

    Returns:
        Process exit code.
    """
    args = build_arg_parser().parse_args(argv)

    try:
        config = load_config(cli_args=argv)
    except (ValidationError, yaml.YAMLError, FileNotFoundError) as e:
        setup_logging(json_format=False)
        logger.error("Invalid configuration", extra={"error": str(e)})
        return EXIT_CONFIG

    setup_logging(config.logging)

    if args.seed:
        return asyncio.run(seed(config))
    return asyncio.run(serve(config))


if __name__ == "__main__":
    sys.exit(main())
