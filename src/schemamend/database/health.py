"""
Database health checking for schemamend.

Provides connectivity checks for a gateway and availability checks for
the configured execution channels.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence
from enum import Enum

from .gateway import DatabaseGateway
from ..classification import ChannelOutcome, classify_channel_result
from ..exceptions import SchemamendError


logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health check status levels."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    name: str
    status: HealthStatus
    message: str
    details: Dict[str, Any]
    duration_ms: float
    timestamp: float

    @property
    def is_healthy(self) -> bool:
        """Check if the result indicates healthy status."""
        return self.status == HealthStatus.HEALTHY

    @property
    def is_critical(self) -> bool:
        """Check if the result indicates critical status."""
        return self.status == HealthStatus.CRITICAL


class DatabaseHealthChecker:
    """Database health monitoring for schemamend."""

    def __init__(self, gateway: DatabaseGateway, name: str = "default"):
        self.gateway = gateway
        self.name = name

    async def check_all(self, channels: Sequence[Any] = ()) -> Dict[str, HealthCheckResult]:
        """
        Run the connectivity check, then channel checks if connected.

        Checks run sequentially; channel probes are pointless without a
        connection.
        """
        results = {}

        connectivity = await self.check_connectivity()
        results[connectivity.name] = connectivity

        if not connectivity.is_critical:
            for result in await self.check_channels(channels):
                results[result.name] = result

        return results

    async def check_connectivity(self) -> HealthCheckResult:
        """Check basic database connectivity."""
        start_time = time.time()

        try:
            details = await self.gateway.ping()
            duration_ms = (time.time() - start_time) * 1000

            return HealthCheckResult(
                name="connectivity",
                status=HealthStatus.HEALTHY,
                message="Database connection successful",
                details=details,
                duration_ms=duration_ms,
                timestamp=time.time(),
            )

        except SchemamendError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(f"Database connectivity check failed: {e}")

            return HealthCheckResult(
                name="connectivity",
                status=HealthStatus.CRITICAL,
                message=f"Database connection failed: {e}",
                details={"error": str(e)},
                duration_ms=duration_ms,
                timestamp=time.time(),
            )

    async def check_channels(self, channels: Sequence[Any]) -> List[HealthCheckResult]:
        """
        Find out which execution channels exist by running ``SELECT 1``.

        A missing entry point is a warning, not a failure: reconciliation
        only needs one working channel.
        """
        results = []

        for channel in channels:
            start_time = time.time()
            exc = None
            data = None

            try:
                data = await channel.execute("SELECT 1")
            except SchemamendError as e:
                exc = e

            verdict = classify_channel_result(exc, data, getattr(channel, "function", None))
            duration_ms = (time.time() - start_time) * 1000

            if verdict.outcome == ChannelOutcome.CHANNEL_MISSING:
                status = HealthStatus.WARNING
                message = "Entry point not found"
            elif verdict.outcome == ChannelOutcome.REJECTED:
                status = HealthStatus.CRITICAL
                message = f"Entry point exists but rejected the test statement: {verdict.reason}"
            else:
                status = HealthStatus.HEALTHY
                message = "Entry point available"

            results.append(
                HealthCheckResult(
                    name=f"channel:{channel.name}",
                    status=status,
                    message=message,
                    details={"outcome": verdict.outcome.value},
                    duration_ms=duration_ms,
                    timestamp=time.time(),
                )
            )

        return results
