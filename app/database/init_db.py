"""
Database initialization script.
"""
import logging

from sqlmodel import SQLModel

from app.database.engine import engine

logger = logging.getLogger("app.database")


def init_database(bind=None) -> None:
    """
    Create analytics tables.
    """
    logger.info("Initializing database...")

    # Register table models on the metadata
    from app.models.analytics_cache import AnalyticsCacheRecord  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_database()
