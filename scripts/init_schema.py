#!/usr/bin/env python3
"""
Create the knowledge base tables in Snowflake.

Runs every CREATE TABLE IF NOT EXISTS statement from
kbvideo.infrastructure.snowflake.schema, so it is safe to re-run.

Usage:
    python scripts/init_schema.py
    python scripts/init_schema.py --dry-run

Requires:
    - .env file with Snowflake credentials
"""

import sys
from pathlib import Path

# Add project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from kbvideo.config.settings import get_settings  # noqa: E402
from kbvideo.infrastructure.snowflake import (  # noqa: E402
    SnowflakeConfig,
    SnowflakeConnectionError,
    create_snowflake_connection,
    ensure_schema,
)
from kbvideo.infrastructure.snowflake.schema import SCHEMA_STATEMENTS  # noqa: E402


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Create knowledge base tables in Snowflake')
    parser.add_argument('--dry-run', action='store_true', help='Print the DDL, don\'t execute it')
    args = parser.parse_args()

    if args.dry_run:
        for statement in SCHEMA_STATEMENTS:
            print(statement.strip() + ";\n")
        sys.exit(0)

    settings = get_settings()
    config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )

    print(f"Connecting to {settings.snowflake_database}.{settings.snowflake_schema}...")

    try:
        with create_snowflake_connection(config=config) as conn:
            executed = ensure_schema(conn)
    except SnowflakeConnectionError as e:
        print(f"ERROR connecting to Snowflake: {e}")
        sys.exit(1)

    print(f"Schema ready ({executed} statements)")


if __name__ == '__main__':
    main()
