from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from fee_ledger.core.config import settings
from fee_ledger.core.db import Base

# Models must be imported so their tables are registered on Base.metadata
from fee_ledger.balances import models as balance_models  # noqa: F401
from fee_ledger.enrollments import models as enrollment_models  # noqa: F401
from fee_ledger.fee_structures import models as fee_structure_models  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", settings.db_url.replace("%", "%%"))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
