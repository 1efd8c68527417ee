#!/usr/bin/env python3
"""
Database initialization script for the analytics service.
Creates the cache table on first run and brings the schema to the latest migration.
"""

import logging
import os
import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from app.database.engine import engine
from app.database.init_db import init_database

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def alembic_config() -> Config:
    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(project_root / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", engine.url.render_as_string(hide_password=False))
    return alembic_cfg


def check_database_exists() -> bool:
    """Check whether the analytics tables are already present."""
    try:
        return inspect(engine).has_table("analytics_cache")
    except SQLAlchemyError as e:
        logger.info(f"Database not found or unavailable: {e}")
        return False


def run_migrations(alembic_cfg: Config) -> bool:
    """Apply pending Alembic migrations."""
    try:
        script = ScriptDirectory.from_config(alembic_cfg)
        with engine.connect() as conn:
            current_rev = MigrationContext.configure(conn).get_current_revision()
        head_rev = script.get_current_head()

        if current_rev == head_rev:
            logger.info("Database schema is up to date")
            return True

        if current_rev is None and check_database_exists():
            # Tables were created from the models; record them as migrated
            logger.info(f"Stamping existing schema at {head_rev}")
            command.stamp(alembic_cfg, "head")
        else:
            logger.info(f"Applying migrations: {current_rev} -> {head_rev}")
            command.upgrade(alembic_cfg, "head")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Migration failed: {e}")
        return False


def main():
    logger.info("Initializing analytics database")

    db_url = os.getenv("DB_URL")
    if db_url:
        logger.info(f"Connecting to database: {db_url.split('@')[1] if '@' in db_url else db_url}")

    if not check_database_exists():
        logger.info("Creating tables for a new database")
        init_database()

    if not run_migrations(alembic_config()):
        sys.exit(1)

    logger.info("Database initialization completed")


if __name__ == "__main__":
    main()
