"""Main application entry point for the generation orchestrator API."""

import argparse
import logging
import sys

import uvicorn

from config.settings import get_config
from utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    config = get_config()
    parser = argparse.ArgumentParser(description="Media Variation Orchestrator API Server")
    parser.add_argument("--host", default=config.api.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.api.port, help="Port to bind to")
    parser.add_argument("--log-level", default=config.logging.level, help="Logging level")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Validate configuration and run the API server."""
    args = parse_args(argv)
    config = get_config()
    config.logging.level = args.log_level
    configure_logging(config.logging)

    problems = config.validate()
    if problems:
        for problem in problems:
            logger.error(f"Configuration error: {problem}")
        return 1

    logger.info(f"Starting server on {args.host}:{args.port}")
    logger.info(f"Provider gateway: {config.provider.base_url}")
    logger.info(f"Credit checks: {'enabled' if config.credits.enabled else 'disabled'}")

    uvicorn.run(
        "api_server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower()
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
