"""
Database engine configuration.
"""
import os
import logging
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

logger = logging.getLogger("app.database")


def create_database_engine(database_url: str = None) -> Engine:
    """
    Create and configure SQLAlchemy engine.

    Returns:
        Configured SQLAlchemy engine
    """
    database_url = database_url or os.getenv("DB_URL", "sqlite:///./faculty_analytics.db")

    logger.info(f"Creating database engine for: {database_url.split('@')[1] if '@' in database_url else database_url}")

    echo = os.getenv("DB_ECHO", "false").lower() == "true"

    if database_url.startswith("sqlite"):
        # Worker threads share the engine
        return create_engine(database_url, connect_args={"check_same_thread": False}, echo=echo)

    return create_engine(
        database_url,
        # Connection pool settings
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo
    )


# Global engine instance
engine = create_database_engine()
