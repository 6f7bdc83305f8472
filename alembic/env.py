"""Alembic environment for the billing tables in ``db.models``."""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

from core.settings import Settings
from db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# An explicit sqlalchemy.url (set by scripts/init_db.py) wins over the environment
database_url = config.get_main_option("sqlalchemy.url") or Settings().DATABASE_URL

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL for the pending revisions without connecting."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply the pending revisions over a live connection."""
    connectable = create_engine(
        database_url,
        future=True,
        pool_pre_ping=database_url.startswith("postgresql"),
    )

    with connectable.connect() as connection:
        # SQLite cannot ALTER most constraints in place
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
