"""
Storefront Session Client Entry Point.

Bootstraps the dependency graph via constructor injection and runs one
of the operator commands.  Every subsystem is wired here; there are no
module-level globals beyond the cached configuration.

Usage::

    python main.py ensure-profiles           # backfill missing profiles (service role)
    python main.py promote-admin EMAIL       # grant the admin role (service role)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import traceback
from typing import Optional, Sequence

from storefront.auth import AuthState
from storefront.config import AppConfig, get_config
from storefront.database import SupabaseManager
from storefront.logger import StructuredLogger, get_logger
from storefront.models.auth_models import ServiceResult
from storefront.services import ServiceContainer, create_services


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Storefront session and profile maintenance.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser(
        "ensure-profiles",
        help="Create default profiles for identities that have none.",
    )
    promote = commands.add_parser(
        "promote-admin",
        help="Give the account registered under EMAIL the admin role.",
    )
    promote.add_argument("email")
    return parser


def _wire(config: AppConfig) -> tuple[SupabaseManager, ServiceContainer]:
    db = SupabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        service_role_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        request_timeout_s=config.REQUEST_TIMEOUT_S,
        logger=StructuredLogger(name="storefront.database"),
    )
    state = AuthState(logger=get_logger("storefront.state"))
    services = create_services(db=db, config=config, state=state)
    return db, services


def _print_result(result: ServiceResult) -> int:
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if result.success else 1


async def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv*, wire dependencies and execute one command."""
    args = _build_parser().parse_args(argv)
    logger: StructuredLogger = get_logger("storefront.main")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()
    config.validate_service_role()

    # ------------------------------------------------------------------
    # 2. Supabase clients + service container
    # ------------------------------------------------------------------
    db, services = _wire(config)
    await db.connect()

    # ------------------------------------------------------------------
    # 3. Command
    # ------------------------------------------------------------------
    logger.info("Running command: %s", args.command)
    admin = services["user_admin_service"]
    if args.command == "ensure-profiles":
        return _print_result(await admin.ensure_profiles())
    return _print_result(await admin.promote_admin(args.email))


def _show_fatal_error(exc: BaseException) -> None:
    """Write the failure to stderr so operators see why the command stopped."""
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        return asyncio.run(run(argv))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        _show_fatal_error(exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
