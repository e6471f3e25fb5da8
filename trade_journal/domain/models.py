"""Small data contracts shared across runtime layers."""

from dataclasses import dataclass


@dataclass(frozen=True)
class HealthStatus:
    """Database readiness reported by health checks.

    Attributes:
        status: `ok` when reachable and migrated, `degraded` when tables are missing.
        detail: Operator-facing message.
        missing_tables: Journal tables absent from the connected schema.
    """

    status: str
    detail: str
    missing_tables: tuple[str, ...] = ()
