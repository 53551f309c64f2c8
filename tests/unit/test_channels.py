"""
Tests for execution channels.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from schemamend.config import ChannelConfig, default_channels
from schemamend.database.gateway import DatabaseGateway
from schemamend.exceptions import ConfigurationError
from schemamend.schema.channels import (
    DirectChannel,
    ExecutionChannel,
    RpcChannel,
    build_channels,
)


def _gateway(kind):
    gateway = MagicMock(spec=DatabaseGateway)
    gateway.kind = kind
    gateway.call_function = AsyncMock(return_value={"success": True})
    gateway.execute_sql = AsyncMock(return_value="ALTER TABLE")
    return gateway


class TestChannels:

    def test_abstract_channel_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            ExecutionChannel(_gateway("rest"))

    @pytest.mark.asyncio
    async def test_rpc_channel_passes_named_parameter(self):
        gateway = _gateway("rest")
        channel = RpcChannel(gateway, "exec_sql", "sql_query")

        result = await channel.execute("SELECT 1")

        assert result == {"success": True}
        assert channel.name == "exec_sql(sql_query)"
        assert channel.function == "exec_sql"
        gateway.call_function.assert_awaited_once_with("exec_sql", {"sql_query": "SELECT 1"})

    @pytest.mark.asyncio
    async def test_direct_channel(self):
        gateway = _gateway("postgres")
        channel = DirectChannel(gateway)

        assert await channel.execute("SELECT 1") == "ALTER TABLE"
        assert channel.name == "direct"
        assert channel.function is None


class TestBuildChannels:

    def test_preserves_order(self):
        channels = build_channels(default_channels(), _gateway("rest"))

        assert [c.name for c in channels] == [
            "exec_sql(sql)",
            "exec_sql(sql_query)",
            "exec_sql(query)",
            "execute_sql(sql)",
            "sql(query)",
            "execute(query)",
        ]

    def test_direct_on_postgres(self):
        configs = [ChannelConfig(kind="direct"), ChannelConfig(function="exec_sql")]
        channels = build_channels(configs, _gateway("postgres"))

        assert isinstance(channels[0], DirectChannel)
        assert isinstance(channels[1], RpcChannel)

    def test_direct_on_rest_rejected(self):
        with pytest.raises(ConfigurationError, match="direct channel"):
            build_channels([ChannelConfig(kind="direct")], _gateway("rest"))
