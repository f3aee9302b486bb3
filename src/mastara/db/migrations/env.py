"""Alembic migration environment configuration.

- Registers every ORM model on the metadata for autogenerate
- Reads the database URL from the environment (falls back to alembic.ini)
- Runs migrations with the synchronous psycopg driver
"""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

# Importing the package registers all tables on Base.metadata
from mastara.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    """Get the database URL for migrations.

    Priority:
    1. MASTARA_DATABASE__URL environment variable
    2. sqlalchemy.url from alembic.ini

    Plain ``postgresql://`` URLs are pointed at the psycopg (v3) driver.
    """
    url = os.environ.get("MASTARA_DATABASE__URL") or config.get_main_option("sqlalchemy.url", "")
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting to a database."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live database in one transaction."""
    # NullPool: connections are closed as soon as migrations finish
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
