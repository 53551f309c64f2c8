"""
Tests for the gateway factory.
"""

import pytest

from schemamend.config import PostgresConnection, RestConnection
from schemamend.database import GatewayFactory, PostgresGateway, RestGateway, create_gateway
from schemamend.exceptions import ConfigurationError


class TestGatewayFactory:

    def test_rest_gateway(self):
        gateway = create_gateway(RestConnection(url="https://x.supabase.co", api_key="k"))

        assert isinstance(gateway, RestGateway)
        assert gateway.base_url == "https://x.supabase.co/rest/v1"

    def test_postgres_gateway(self):
        gateway = create_gateway(
            PostgresConnection(dsn="postgresql://u:p@db.local:5432/app", max_size=3)
        )

        assert isinstance(gateway, PostgresGateway)
        assert gateway.pool.config.database == "app"
        assert gateway.pool.config.max_size == 3
        assert not gateway.pool.is_initialized

    def test_missing_connection(self):
        with pytest.raises(ConfigurationError, match="No database connection"):
            create_gateway(None)
