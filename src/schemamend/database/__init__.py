"""
Database integration package for schemamend.

This package provides:
- The gateway interface the reconciler talks to
- A PostgREST gateway for hosted databases
- A direct PostgreSQL gateway over an asyncpg pool
- Connectivity and execution channel health checks
"""

from .connection import ConnectionConfig, ConnectionPool
from .gateway import DatabaseGateway
from .rest import RestGateway
from .postgres import PostgresGateway
from .factory import GatewayFactory, create_gateway
from .health import DatabaseHealthChecker, HealthCheckResult, HealthStatus

__all__ = [
    "ConnectionConfig",
    "ConnectionPool",
    "DatabaseGateway",
    "RestGateway",
    "PostgresGateway",
    "GatewayFactory",
    "create_gateway",
    "DatabaseHealthChecker",
    "HealthCheckResult",
    "HealthStatus",
]
