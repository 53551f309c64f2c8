"""
schemamend: best-effort, idempotent schema reconciliation for hosted PostgreSQL.

schemamend probes a live database for the columns an application expects,
adds the missing ones through whatever statement-execution entry point the
database exposes, verifies every change, and reports the SQL that still
needs to be run by hand.
"""

__version__ = "0.1.0"

from .config import SchemamendConfig
from .exceptions import (
    SchemamendError,
    ConfigurationError,
    DatabaseError,
    DatabaseConnectionError,
    SchemaError,
)
from .expectation import ColumnSpec, SchemaExpectation

__all__ = [
    "__version__",
    "SchemamendConfig",
    "SchemamendError",
    "ConfigurationError",
    "DatabaseError",
    "DatabaseConnectionError",
    "SchemaError",
    "ColumnSpec",
    "SchemaExpectation",
]
