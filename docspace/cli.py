"""
DocSpace CLI — Bootstrap and management commands.

Commands:
- docspace init          — Create the database schema
- docspace create-user   — Add a user (owner identity for folders and files)
- docspace issue-token   — Print a bearer token for a user (dev / scripting)
- docspace run           — Serve the HTTP API with uvicorn

Every command accepts ``--config`` (default: DOCSPACE_CONFIG or discovery).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from sqlalchemy import select

logger = logging.getLogger("docspace.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="docspace",
        description="DocSpace — file/folder store with collaborative document editing",
    )
    parser.add_argument("--config", default=None, help="Path to docspace.yaml")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # docspace init
    subparsers.add_parser("init", help="Create database tables")

    # docspace create-user
    user_parser = subparsers.add_parser("create-user", help="Create a user")
    user_parser.add_argument("username", help="Unique login name (drives the storage prefix)")
    user_parser.add_argument("--display-name", default="", help="Human-readable name")

    # docspace issue-token
    token_parser = subparsers.add_parser("issue-token", help="Print a bearer token for a user")
    token_parser.add_argument("username", help="Existing username")
    token_parser.add_argument("--ttl", type=int, default=None, help="Lifetime in seconds")

    # docspace run
    run_parser = subparsers.add_parser("run", help="Start the HTTP API server")
    run_parser.add_argument("--host", default="0.0.0.0", help="Host to bind (default: 0.0.0.0)")
    run_parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    from docspace.engine.config import load_config
    from docspace.engine.errors import ConfigError
    from docspace.engine.logging import init_logging

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 2
    init_logging(config.logging.level, config.logging.format)

    if args.command == "init":
        return asyncio.run(cmd_init(config))
    elif args.command == "create-user":
        return asyncio.run(cmd_create_user(config, args.username, args.display_name))
    elif args.command == "issue-token":
        return asyncio.run(cmd_issue_token(config, args.username, args.ttl))
    elif args.command == "run":
        return cmd_run(config, args)
    parser.print_help()
    return 0


async def cmd_init(config) -> int:
    """Create all tables in the configured database."""
    from docspace.db.base import create_engine_from_config
    from docspace.db.session import create_tables

    engine = create_engine_from_config(config.database)
    try:
        await create_tables(engine)
    finally:
        await engine.dispose()
    print(f"[OK] Schema created at {config.database.url}")
    return 0


async def cmd_create_user(config, username: str, display_name: str) -> int:
    from docspace.db.base import create_engine_from_config
    from docspace.db.models import User
    from docspace.db.session import build_session_factory, session_scope

    engine = create_engine_from_config(config.database)
    try:
        async with session_scope(build_session_factory(engine)) as session:
            existing = await session.execute(select(User).where(User.username == username))
            if existing.scalar_one_or_none() is not None:
                print(f"[ERROR] User '{username}' already exists", file=sys.stderr)
                return 1
            user = User(username=username, display_name=display_name or username)
            session.add(user)
            await session.flush()
            print(f"[OK] Created user '{username}' (id={user.id})")
    finally:
        await engine.dispose()
    return 0


async def cmd_issue_token(config, username: str, ttl: Optional[int]) -> int:
    from docspace.db.base import create_engine_from_config
    from docspace.db.models import User
    from docspace.db.session import build_session_factory, session_scope
    from docspace.documents.tokens import TokenSigner

    engine = create_engine_from_config(config.database)
    try:
        async with session_scope(build_session_factory(engine)) as session:
            result = await session.execute(select(User).where(User.username == username))
            user = result.scalar_one_or_none()
    finally:
        await engine.dispose()

    if user is None:
        print(f"[ERROR] No user named '{username}'", file=sys.stderr)
        return 1

    signer = TokenSigner(config.auth.jwt_secret, config.auth.algorithm)
    print(signer.issue_access_token(user.id, user.username, ttl or config.auth.token_ttl_seconds))
    return 0


def cmd_run(config, args: argparse.Namespace) -> int:
    """Serve the API with uvicorn."""
    import uvicorn

    from docspace.api.app import create_app

    app = create_app(config, create_schema=config.platform.environment == "dev")
    logger.info(f"Serving on {args.host}:{args.port}")
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    except KeyboardInterrupt:
        print("\nServer stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
