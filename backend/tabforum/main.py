"""Process startup for tabforum.

``main`` is installed as the ``tabforum-init-db`` command. It configures
logging from the settings, refuses an unsafe production configuration,
checks that the database answers and creates the missing tables. Hosts that
embed the services call it once before serving.
"""

import logging
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .core.config import ConfigurationError, settings
from .core.logging_config import mask_database_url, setup_logging
from .database import DATABASE_URL, engine, init_db, is_postgresql

logger = logging.getLogger(__name__)


def _connection_hint(error: str) -> str:
    if is_postgresql():
        if "could not connect" in error or "Connection refused" in error:
            return "Verify PostgreSQL is running and DATABASE_URL points at it."
        if "authentication failed" in error or "password" in error.lower():
            return "Check the username and password in DATABASE_URL."
        if "does not exist" in error:
            return "Create the database first: createdb <database_name>"
        return "Check DATABASE_URL."
    return "Check that the SQLite directory exists and is writable."


def check_database_connection() -> bool:
    """True when the configured database answers a trivial query."""
    masked = mask_database_url(DATABASE_URL)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.critical(
            "Database connection failed",
            extra={"database_url": masked, "hint": _connection_hint(str(e)), "error": str(e)},
        )
        return False
    logger.info("Database connection verified", extra={"database_url": masked})
    return True


def main() -> int:
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)
    logger.info("Starting tabforum", extra={"environment": settings.environment.value})

    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical("Startup blocked: %s", e)
        return 1

    if not check_database_connection():
        return 1

    init_db()
    logger.info("Database tables ready")
    return 0


if __name__ == "__main__":
    sys.exit(main())
