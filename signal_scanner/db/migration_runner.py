"""Automatic migration runner"""
import logging
import os
from typing import Optional

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)


def run_migrations(database_url: Optional[str] = None) -> None:
    """
    Run Alembic migrations automatically on startup.

    This function runs 'alembic upgrade head' programmatically.

    Args:
        database_url: Target database (defaults to the configured one)
    """
    try:
        # Get the alembic.ini path
        alembic_ini_path = os.path.join(
            os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
            "alembic.ini"
        )

        if not os.path.exists(alembic_ini_path):
            raise FileNotFoundError(f"alembic.ini not found at {alembic_ini_path}")

        # Create Alembic config; keep the application's logging setup
        alembic_cfg = Config(alembic_ini_path)
        alembic_cfg.attributes["configure_logger"] = False
        if database_url:
            alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))

        # Run migrations
        logger.info("Running database migrations...")
        command.upgrade(alembic_cfg, "head")
        logger.info("Database migrations completed successfully")

    except Exception as e:
        logger.error(f"Failed to run database migrations: {e}")
        raise
