"""
Execution channels for arbitrary statements.

Hosted databases rarely expose raw SQL execution. Some projects install a
helper function (``exec_sql``, ``execute_sql``, ``sql``...) with one of a
handful of parameter names; none of them are guaranteed to exist. A channel
wraps one such entry point, and the reconciler tries the configured channels
in order.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from ..config import ChannelConfig
from ..database.gateway import DatabaseGateway
from ..exceptions import ConfigurationError


logger = logging.getLogger(__name__)


class ExecutionChannel(ABC):
    """A candidate entry point for running one statement."""

    #: Remote function backing the channel, if any
    function: Optional[str] = None

    def __init__(self, gateway: DatabaseGateway):
        self.gateway = gateway

    @property
    @abstractmethod
    def name(self) -> str:
        """Label used in logs and reports."""
        pass

    @abstractmethod
    async def execute(self, sql: str) -> Any:
        """
        Run a statement.

        Returns:
            Whatever payload the entry point returned

        Raises:
            RemoteCallError: If the entry point answered with an error
            DatabaseConnectionError: If the database could not be reached
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name})"


class RpcChannel(ExecutionChannel):
    """A remote function taking the statement as a named parameter."""

    def __init__(self, gateway: DatabaseGateway, function: str, param: str = "sql"):
        super().__init__(gateway)
        self.function = function
        self.param = param

    @property
    def name(self) -> str:
        return f"{self.function}({self.param})"

    async def execute(self, sql: str) -> Any:
        logger.debug(f"Executing via {self.name}: {sql}")
        return await self.gateway.call_function(self.function, {self.param: sql})


class DirectChannel(ExecutionChannel):
    """Raw execution on the gateway's own connection."""

    @property
    def name(self) -> str:
        return "direct"

    async def execute(self, sql: str) -> Any:
        logger.debug(f"Executing directly: {sql}")
        return await self.gateway.execute_sql(sql)


def build_channels(
    configs: Sequence[ChannelConfig], gateway: DatabaseGateway
) -> List[ExecutionChannel]:
    """
    Build channels from configuration, preserving trial order.

    Raises:
        ConfigurationError: If a direct channel is configured on a gateway
            that cannot execute raw statements
    """
    channels: List[ExecutionChannel] = []

    for config in configs:
        if config.kind == "direct":
            if gateway.kind != "postgres":
                raise ConfigurationError(
                    f"The direct channel is not available on a {gateway.kind} gateway"
                )
            channels.append(DirectChannel(gateway))
        else:
            channels.append(RpcChannel(gateway, config.function, config.param))

    logger.debug(f"Execution channels: {[c.name for c in channels]}")
    return channels
