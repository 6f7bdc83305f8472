#!/usr/bin/env python3
"""
Container entrypoint step: block until the billing database accepts
connections, then bring its schema to the latest Alembic revision.
"""

import os
import sys

# Add the project root to the Python path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

import structlog  # noqa: E402
import tenacity  # noqa: E402
from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402
from sqlalchemy import create_engine, text  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402

from core.dependencies import get_settings, init_settings  # noqa: E402

log = structlog.get_logger("scripts.init_db")


@tenacity.retry(
    retry=tenacity.retry_if_exception_type(OperationalError),
    stop=tenacity.stop_after_attempt(30),
    wait=tenacity.wait_fixed(2),
    before_sleep=lambda state: log.info(
        "db.waiting", attempt=state.attempt_number, error=str(state.outcome.exception())
    ),
    reraise=True,
)
def wait_for_db(database_url: str) -> None:
    engine = create_engine(database_url)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    finally:
        engine.dispose()


def run_migrations(database_url: str) -> None:
    config = Config(os.path.join(ROOT, "alembic.ini"))
    config.set_main_option("script_location", os.path.join(ROOT, "alembic"))
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


def init_database() -> None:
    init_settings()
    database_url = get_settings().DATABASE_URL

    try:
        wait_for_db(database_url)
    except OperationalError as e:
        log.error("db.unavailable", error=str(e))
        sys.exit(1)
    log.info("db.ready")

    run_migrations(database_url)
    log.info("db.migrated", revision="head")


if __name__ == "__main__":
    init_database()
