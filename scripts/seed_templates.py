#!/usr/bin/env python3
"""
Seed workflow templates from a configuration set into the database.

Loads and validates the configuration set, creates the tables if they do
not exist, and upserts every template by code.  Templates whose node list
changed get a new version; instances already running keep the version
they started with.

Usage:
    python3 scripts/seed_templates.py [--db-url URL] [--config-dir DIR] [--set NAME]

DATABASE_URL is used when --db-url is not given.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = "sqlite:///workflow.db"


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Upsert the templates of a workflow configuration set.",
    )
    parser.add_argument(
        "--db-url",
        default=os.environ.get("DATABASE_URL", DEFAULT_DB_URL),
        help="SQLAlchemy database URL (default: $DATABASE_URL or %(default)s)",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory holding configuration sets (default: workflow_config/sets)",
    )
    parser.add_argument("--set", dest="set_name", default="default")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    from workflow_config import ConfigValidationError, get_active_config
    from workflow_kernel.db import create_tables, init_engine_from_url, session_scope
    from workflow_kernel.logging_config import configure_logging
    from workflow_services import TemplateStore

    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        config = get_active_config(args.config_dir, args.set_name)
    except (FileNotFoundError, ConfigValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Config set: {config.name} v{config.version}")
    print(f"  checksum:  {config.checksum[:16]}...")
    print(f"  templates: {len(config.templates)}")

    init_engine_from_url(args.db_url)
    create_tables()

    with session_scope() as session:
        results = TemplateStore(session, config).sync_from_config()

    for result in results:
        t = result.template
        if result.created:
            state = "created"
        elif result.changed:
            state = "updated"
        else:
            state = "unchanged"
        print(f"  {t.code:<28} v{t.version:<3} {t.node_count:>2} nodes  {state}")

    print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
