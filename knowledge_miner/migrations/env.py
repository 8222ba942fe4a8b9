from logging.config import fileConfig
import os
from pathlib import Path
from sqlalchemy import engine_from_config
from sqlalchemy import pool
from alembic import context
from dotenv import load_dotenv

# Load environment variables from .env if present; in containers they are
# passed directly. Project root first, then the current directory.
for env_path in [
    Path(__file__).parent.parent.parent / ".env",
    Path(".env"),
]:
    if env_path.exists():
        load_dotenv(env_path)
        break

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Schema is written by hand in versions/; no autogenerate.
target_metadata = None

# DATABASE_URL always wins over alembic.ini
database_url = os.getenv('DATABASE_URL')
if database_url:
    # SQLAlchemy 2.x only accepts the "postgresql" scheme
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)
    config.set_main_option('sqlalchemy.url', database_url)


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection, target_metadata=target_metadata
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
