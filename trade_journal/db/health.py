"""Database readiness checks covering connectivity and migrated journal tables."""

from typing import Final

from sqlalchemy import Engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from trade_journal.domain import HealthStatus

from .interfaces import DatabaseHealthPort

JOURNAL_TABLE_NAMES: Final[tuple[str, ...]] = ("trade", "sync_run")


class SQLAlchemyDatabaseHealthService(DatabaseHealthPort):
    """Readiness check for the journal database.

    A reachable database whose `trade` or `sync_run` table is missing is
    reported as `degraded` so deployments that skipped `alembic upgrade head`
    are visible before the first sync fails.
    """

    def __init__(self, engine: Engine):
        if engine is None:
            raise ValueError("engine must not be None")
        self._engine = engine

    def db_connection_label(self) -> str:
        """Return the engine URL with the password masked."""

        return self._engine.url.render_as_string(hide_password=True)

    def db_check_health(self) -> HealthStatus:
        """Check connectivity and confirm the journal tables exist.

        Returns:
            HealthStatus: `ok`, or `degraded` with the missing table names.

        Raises:
            ConnectionError: Raised when the database cannot be queried.
        """

        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                existing_tables = set(inspect(connection).get_table_names())
        except SQLAlchemyError as error:
            raise ConnectionError("database connectivity check failed") from error

        missing_tables = tuple(name for name in JOURNAL_TABLE_NAMES if name not in existing_tables)
        if missing_tables:
            return HealthStatus(
                status="degraded",
                detail="journal schema is not migrated; run `alembic upgrade head`",
                missing_tables=missing_tables,
            )
        return HealthStatus(status="ok", detail="database reachable and journal schema present")
