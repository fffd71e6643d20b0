"""Create the organization tables if they are missing.

Usage (requires DATABASE_URL, read from the environment or a .env file):
    python migrate.py                  # run the configured plan
    python migrate.py --status         # show which tables exist
    python migrate.py --dry-run        # print the DDL without connecting
    python migrate.py --alembic        # upgrade through the Alembic revisions

Safe to re-run; every statement only creates what is absent.

--alembic reads alembic.ini and alembic/ next to this file, so it needs a
source checkout or an editable install; a regular wheel install only
supports the other modes.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from orgschema.bootstrapper import SchemaBootstrapper
from orgschema.config import Settings, load_settings
from orgschema.logging_utils import configure_logging
from orgschema.plans import ORGANIZATIONS, PLANS, BootstrapError, Plan, get_plan

logger = logging.getLogger("orgschema.migrate")


def run_migrations(settings: Settings) -> None:
    root = Path(__file__).resolve().parent
    alembic_cfg = Config(str(root / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url.replace("%", "%%"))
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create missing organization tables")
    parser.add_argument("--plan", choices=sorted(PLANS), help="Plan to apply (default: BOOTSTRAP_PLAN)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--status", action="store_true", help="Report which plan tables exist")
    mode.add_argument("--dry-run", action="store_true", help="Print the DDL instead of executing it")
    mode.add_argument("--alembic", action="store_true", help="Upgrade through Alembic revisions to head")
    args = parser.parse_args(argv)

    load_dotenv()
    settings = load_settings()
    configure_logging(settings.log_level)

    try:
        plan = get_plan(args.plan or settings.bootstrap_plan)
        if args.alembic and plan is not ORGANIZATIONS:
            parser.error(f"--alembic only manages the {ORGANIZATIONS.name!r} plan")
        return _run(args, settings, plan)
    except (BootstrapError, RuntimeError, SQLAlchemyError) as exc:
        logger.error(
            "Schema bootstrap failed",
            extra={
                "event": "bootstrap_failed",
                "reason": f"{type(exc).__name__}: {exc}",
                "db_backend": settings.db_backend if settings.database_url else None,
            },
        )
        print(f"Schema bootstrap failed: {exc}", file=sys.stderr)
        return 1


def _run(args: argparse.Namespace, settings: Settings, plan: Plan) -> int:
    if args.alembic:
        settings.validate()
        run_migrations(settings)
        print("Migrations complete.")
        return 0

    bootstrapper = SchemaBootstrapper.from_settings(settings, plan)

    if args.dry_run:
        for statement in bootstrapper.render_sql():
            print(statement)
        return 0

    if args.status:
        for table, present in bootstrapper.status().items():
            print(f"{table}: {'present' if present else 'missing'}")
        return 0

    result = bootstrapper.run()
    if not result.ok:
        print(f"Schema bootstrap failed: {result.failure.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
