"""
Metadata Agent Entry Point
==========================
Resolve and print the agent's identity, optionally verifying authentication.
"""

import argparse
import json
import logging
import sys
from typing import Optional, Sequence

import structlog

from metadata_agent.config import Settings, get_settings, load_settings
from metadata_agent.environment import Environment
from metadata_agent.exceptions import AuthenticationError, ConfigurationError
from metadata_agent.oauth2 import OAuth2

logger = structlog.get_logger()


def configure_logging(settings: Settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr)
    logging.getLogger().setLevel(settings.log_level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="metadata-agent",
        description="Resolve the deployment identity of this instance.",
    )
    parser.add_argument("--config", help="Path to the agent YAML configuration file")
    parser.add_argument(
        "--check-auth",
        action="store_true",
        help="Also obtain an OAuth2 access token",
    )
    return parser.parse_args(argv)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the metadata-agent command."""
    args = _parse_args(argv)
    # Keep config loading output off stdout until the file settings are known.
    configure_logging(get_settings())

    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"metadata-agent: {e}", file=sys.stderr)
        return 1

    configure_logging(settings)

    with Environment(settings) as environment:
        identity = environment.identity()
        logger.info("Resolved instance identity", **identity.to_dict())
        result = {"identity": identity.to_dict()}

        if args.check_auth:
            with OAuth2(environment) as auth:
                try:
                    auth.get_auth_header_value()
                except AuthenticationError as e:
                    logger.error("Authentication check failed", error=str(e))
                    return 1
                result["auth"] = {"ok": True, "token_type": auth.token.token_type}

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(run())
