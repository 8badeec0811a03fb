#!/usr/bin/env python3
"""Entry point for the token federation operator CLI.

Validates the environment configuration and resolves one token, read from
stdin, to its local user record.
"""

import argparse
import asyncio
import json
import sys

import structlog

from .config import load_settings
from .errors import ConfigurationError, FederationError
from .logging import configure_logging
from .models import Credential, UserStore
from .resolver import IdentityResolver
from .store import InMemoryUserStore, SQLUserStore

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_AUTH_FAILED = 1
EXIT_CONFIG_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="token-federation",
        description="Resolve a bearer token (read from stdin) to a local user.",
    )
    parser.add_argument(
        "--principal",
        default="cli",
        help="Name used to correlate log lines; never sent upstream",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate configuration and exit",
    )
    return parser.parse_args(argv)


async def check_config() -> int:
    settings = load_settings()
    resolver = IdentityResolver.from_settings(settings, InMemoryUserStore())
    await resolver.aclose()
    return EXIT_OK


async def run(principal: str, token: str) -> int:
    settings = load_settings()

    store: UserStore
    sql_store = None
    if settings.database_url:
        sql_store = SQLUserStore.from_url(settings.database_url)
        store = sql_store
    else:
        store = InMemoryUserStore()

    try:
        if sql_store is not None:
            await sql_store.create_schema()
        async with IdentityResolver.from_settings(settings, store) as resolver:
            credential = Credential(principal=principal, token=token)
            user = await resolver.authenticate(credential)
    finally:
        if sql_store is not None:
            await sql_store.close()

    print(
        json.dumps(
            {
                "user_id": user.user_id,
                "federation_key": user.federation_key,
                "username": user.username,
                "email": user.email,
            }
        )
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return a process exit status."""
    configure_logging()
    args = parse_args(argv)

    try:
        if args.check_config:
            return asyncio.run(check_config())

        token = sys.stdin.readline().strip()
        if not token:
            logger.error("No token supplied on stdin", principal=args.principal)
            return EXIT_AUTH_FAILED

        return asyncio.run(run(args.principal, token))

    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e))
        return EXIT_CONFIG_ERROR
    except FederationError as e:
        logger.error(
            "Authentication failed",
            principal=args.principal,
            error=str(e),
            error_type=type(e).__name__,
        )
        return EXIT_AUTH_FAILED


if __name__ == "__main__":
    sys.exit(main())
