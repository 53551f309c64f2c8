"""
Factory for creating database gateways.
"""

import logging
from typing import Dict, Type

from .gateway import DatabaseGateway
from .postgres import PostgresGateway
from .rest import RestGateway
from ..exceptions import ConfigurationError


logger = logging.getLogger(__name__)


class GatewayFactory:
    """Creates the gateway matching a connection configuration's ``kind``."""

    _gateways: Dict[str, Type[DatabaseGateway]] = {
        "rest": RestGateway,
        "postgres": PostgresGateway,
    }

    @classmethod
    def create_gateway(cls, connection) -> DatabaseGateway:
        """
        Create a gateway for a connection configuration.

        Args:
            connection: ``RestConnection`` or ``PostgresConnection``

        Raises:
            ConfigurationError: If the connection kind is unknown
        """
        if connection is None:
            raise ConfigurationError("No database connection configured")

        kind = getattr(connection, "kind", None)
        if kind not in cls._gateways:
            raise ConfigurationError(
                f"Unknown connection kind '{kind}'. "
                f"Supported: {list(cls._gateways.keys())}"
            )

        logger.debug(f"Creating {kind} gateway")

        if kind == "postgres":
            return PostgresGateway.from_config(connection.to_connection_config())
        return RestGateway(connection)


def create_gateway(connection) -> DatabaseGateway:
    """Convenience wrapper around ``GatewayFactory.create_gateway``."""
    return GatewayFactory.create_gateway(connection)
