# Overview: Resolves which native-SQL dialect the analytics queries target.

from __future__ import annotations

import enum
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.engine import make_url

"""
Dialect selection (authoritative)

- The dialect is an explicit configuration value (ANALYTICS_SQL_DIALECT),
  resolved ONCE in create_app() and stored on app.extensions.
- The database URL never selects the dialect. It is only checked against
  the configured value so a mismatch fails at startup, not on the first query.
- Unset -> production dialect (oracle).
- Unknown or mismatched value -> UnknownDialectError at startup, never per query.
"""

EXTENSION_KEY = "analytics_dialect"


class UnknownDialectError(Exception):
    """Configured dialect is neither the test nor the production dialect."""


class SqlDialect(str, enum.Enum):
    SQLITE = "sqlite"  # test dialect
    ORACLE = "oracle"  # production dialect


DEFAULT_DIALECT = SqlDialect.ORACLE


def resolve_dialect(value: str | SqlDialect | None) -> SqlDialect:
    if value is None:
        return DEFAULT_DIALECT
    if isinstance(value, SqlDialect):
        return value
    normalized = value.strip().lower()
    if not normalized:
        return DEFAULT_DIALECT
    try:
        return SqlDialect(normalized)
    except ValueError:
        known = ", ".join(d.value for d in SqlDialect)
        raise UnknownDialectError(
            f"Unknown ANALYTICS_SQL_DIALECT {value!r} (expected one of: {known})"
        ) from None


@dataclass(frozen=True)
class DialectDetector:
    dialect: SqlDialect = DEFAULT_DIALECT

    def is_alternate_dialect(self) -> bool:
        """True for the test dialect, False for production."""
        return self.dialect is SqlDialect.SQLITE


def get_dialect_detector() -> DialectDetector:
    """Detector bound to the current app (set up by create_app)."""
    detector = current_app.extensions.get(EXTENSION_KEY)
    if detector is None:
        raise UnknownDialectError("analytics dialect was not initialised; use create_app()")
    return detector


def check_database_backend(detector: DialectDetector, database_uri: str) -> None:
    """Refuse a dialect whose SQL the configured database cannot run."""
    backend = make_url(database_uri).get_backend_name()
    if backend != detector.dialect.value:
        raise UnknownDialectError(
            f"ANALYTICS_SQL_DIALECT {detector.dialect.value!r} does not match "
            f"the {backend!r} database in SQLALCHEMY_DATABASE_URI"
        )
