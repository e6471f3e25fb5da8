"""Alembic environment for the trade journal `trade` and `sync_run` schema."""
# pylint: disable=no-member,invalid-name,wrong-import-order

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from trade_journal.config import config_load_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = None


def env_resolve_database_url() -> str:
    """Return the migration target URL.

    Precedence: `alembic -x database_url=...`, then a URL already set on the
    config (tests migrate throwaway SQLite files this way), then `DATABASE_URL`
    from runtime settings.

    Raises:
        SettingsLoadError: Raised when the settings fallback is blank or invalid.
    """

    x_arguments = context.get_x_argument(as_dictionary=True)
    cli_database_url = x_arguments.get("database_url", "").strip()
    if cli_database_url:
        return cli_database_url
    configured_database_url = (config.get_main_option("sqlalchemy.url") or "").strip()
    if configured_database_url:
        return configured_database_url
    return config_load_database_url()


def run_migrations_offline(database_url: str) -> None:
    """Emit migration SQL for the journal schema without a live connection."""

    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=database_url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(database_url: str) -> None:
    """Apply journal migrations over a live connection.

    SQLite cannot alter constraints in place, so its migrations run in batch
    mode (table copy and swap).
    """

    config.set_main_option("sqlalchemy.url", database_url)
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
            transaction_per_migration=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline(env_resolve_database_url())
else:
    run_migrations_online(env_resolve_database_url())
