"""
Kalos catalog command line
==========================

Operator entry points:
1. ``kalos import PATH`` upserts exercises from a semicolon-delimited CSV file
   straight into Postgres and prints the import summary as JSON.
2. ``kalos issue-token`` mints an admin bearer token for the HTTP import endpoint.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import psycopg
from psycopg_pool import ConnectionPool

from .config import get_settings
from .domain.contracts import ExerciseStore, ImportSummary
from .domain.errors import CatalogError
from .domain.importer import ExerciseImporter
from .repository import ExerciseRepository
from .security.tokens import issue_access_token

log = logging.getLogger("kalos.cli")

EXIT_OK = 0
EXIT_IMPORT_FAILED = 1
EXIT_MISSING_FILE = 2


def run_import(path: Path, store: ExerciseStore) -> ImportSummary:
    """Read ``path`` and import it into ``store``."""
    log.info("Importing exercises from %s", path)
    return ExerciseImporter(store).run(path.read_bytes())


def _cmd_import(args: argparse.Namespace) -> int:
    path = Path(args.path)
    if not path.is_file():
        log.error("CSV file not found: %s", path)
        return EXIT_MISSING_FILE

    database_url = args.database_url or get_settings().database_url
    with ConnectionPool(database_url, open=True) as pool:
        repository = ExerciseRepository(pool)
        try:
            if args.init_schema:
                repository.ensure_schema()
            summary = run_import(path, repository)
        except (CatalogError, psycopg.Error) as exc:
            log.error("Import aborted: %s", exc)
            return EXIT_IMPORT_FAILED

    print(json.dumps(asdict(summary), indent=2))
    log.info(summary.message)
    return EXIT_OK


def _cmd_issue_token(args: argparse.Namespace) -> int:
    token, expires_in = issue_access_token(subject=args.subject, scopes=args.scope or None)
    print(json.dumps({"access_token": token, "token_type": "bearer", "expires_in": expires_in}))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kalos", description="Kalos exercise catalog tools")
    parser.add_argument("--log-level", default=get_settings().log_level, help="Logging level (default: LOG_LEVEL or INFO)")
    commands = parser.add_subparsers(dest="command", required=True)

    importer = commands.add_parser("import", help="Upsert exercises from a semicolon-delimited CSV file")
    importer.add_argument("path", help="Path to the CSV file")
    importer.add_argument("--database-url", help="Postgres URL (default: POSTGRES_URL)")
    importer.add_argument("--init-schema", action="store_true", help="Create the exercises table before importing")
    importer.set_defaults(handler=_cmd_import)

    token = commands.add_parser("issue-token", help="Mint an admin bearer token for the import endpoint")
    token.add_argument("--subject", default="catalog-admin", help="Operator name stored in the token subject")
    token.add_argument("--scope", action="append", help="Scope to grant; repeatable (default: the admin scope)")
    token.set_defaults(handler=_cmd_issue_token)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
