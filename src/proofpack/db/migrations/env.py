"""Alembic environment for the Proof Pack schema.

PROOFPACK_DATABASE__URL wins over sqlalchemy.url in alembic.ini. Migrations
run synchronously; psycopg serves both the sync and async dialects, so the
URL is rewritten the same way the application rewrites it.
"""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from proofpack.db import to_async_url
from proofpack.db.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def database_url() -> str:
    configured = os.environ.get("PROOFPACK_DATABASE__URL")
    return to_async_url(configured or config.get_main_option("sqlalchemy.url", ""))


def run_offline() -> None:
    """Write the migration SQL to stdout instead of executing it."""
    context.configure(
        url=database_url(),
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(database_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=Base.metadata, **COMPARE_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
