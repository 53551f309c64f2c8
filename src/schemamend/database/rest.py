"""
PostgREST gateway for hosted databases.

Talks to the REST API the hosting platform puts in front of PostgreSQL:
table reads via ``GET /rest/v1/<table>``, remote functions via
``POST /rest/v1/rpc/<name>`` and NULL backfills via ``PATCH``.
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple

import aiohttp

from .gateway import DatabaseGateway
from ..exceptions import DatabaseConnectionError, RemoteCallError
from ..sql import parse_default_literal, validate_identifier

if TYPE_CHECKING:
    from ..config import RestConnection


logger = logging.getLogger(__name__)


def parse_content_range(value: Optional[str]) -> int:
    """Extract the total from a ``Content-Range`` header such as ``0-4/5`` or ``*/5``."""
    if not value or "/" not in value:
        return 0
    total = value.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else 0


class RestGateway(DatabaseGateway):
    """
    Gateway over the hosted platform's REST API.

    Network errors and 5xx responses are retried with exponential backoff.
    Error responses are raised as ``RemoteCallError`` with the PostgREST or
    PostgreSQL code attached.
    """

    kind = "rest"

    def __init__(self, config: "RestConnection"):
        self.config = config
        self.base_url = config.rest_url

        # Session for connection reuse
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "apikey": self.config.api_key,
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Accept-Profile": self.config.schema_name,
                    "Content-Profile": self.config.schema_name,
                    "Content-Type": "application/json",
                    "User-Agent": "schemamend/0.1",
                },
            )
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Any, Mapping[str, str]]:
        """
        Perform a request with retries.

        Returns:
            Tuple of (status, decoded body, response headers)

        Raises:
            RemoteCallError: If the API answered with an error status
            DatabaseConnectionError: If the API could not be reached
        """
        session = await self._get_session()
        url = f"{self.base_url}/{path}"
        retry_count = 0

        while True:
            try:
                async with session.request(
                    method, url, params=params, json=payload, headers=headers
                ) as response:
                    body = await self._read_body(response)

                    if response.status < 400:
                        return response.status, body, response.headers

                    error = self._to_remote_error(response.status, body)

                    if response.status >= 500 and retry_count < self.config.max_retries:
                        delay = self.config.retry_delay * (2 ** retry_count)
                        logger.warning(
                            f"API error (status {response.status}) on {method} {path}, "
                            f"retrying in {delay}s (attempt {retry_count + 1})"
                        )
                        await asyncio.sleep(delay)
                        retry_count += 1
                        continue

                    raise error

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if retry_count < self.config.max_retries:
                    delay = self.config.retry_delay * (2 ** retry_count)
                    logger.warning(
                        f"Network error on {method} {path}, retrying in {delay}s "
                        f"(attempt {retry_count + 1}): {e}"
                    )
                    await asyncio.sleep(delay)
                    retry_count += 1
                    continue

                raise DatabaseConnectionError(
                    f"Could not reach {self.config.url}", cause=e
                ) from e

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        raw = await response.read()
        if not raw:
            return None
        # Proxies in front of the API may answer with non-UTF-8 error pages
        text = raw.decode("utf-8", errors="replace")
        try:
            return json.loads(text)
        except ValueError:
            return text

    @staticmethod
    def _to_remote_error(status: int, body: Any) -> RemoteCallError:
        """Build a RemoteCallError from a PostgREST error body."""
        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or f"HTTP {status}"
            return RemoteCallError(
                str(message),
                code=body.get("code"),
                status=status,
                hint=body.get("hint"),
                remote_details=body.get("details"),
            )

        return RemoteCallError(str(body) if body else f"HTTP {status}", status=status)

    async def ping(self) -> Dict[str, Any]:
        """Fetch the API root to confirm reachability and credential."""
        try:
            status, _, _ = await self._request("GET", "")
        except RemoteCallError as e:
            if e.status in (401, 403):
                raise DatabaseConnectionError(
                    f"Credential rejected by {self.config.url}: {e.message}", cause=e
                ) from e
            # Any other answer still proves the API is reachable
            status = e.status

        return {
            "url": self.config.url,
            "schema": self.config.schema_name,
            "status": status,
        }

    async def select_column(self, table: str, column: str) -> Any:
        validate_identifier(table, "table name")
        validate_identifier(column, "column name")

        _, body, _ = await self._request(
            "GET", table, params={"select": column, "limit": "1"}
        )
        return body

    async def call_function(self, name: str, params: Dict[str, Any]) -> Any:
        validate_identifier(name, "function name")

        _, body, _ = await self._request("POST", f"rpc/{name}", payload=params)
        return body

    async def execute_sql(self, sql: str) -> Any:
        raise RemoteCallError(
            "Could not find a raw SQL endpoint on the REST API",
            code="PGRST202",
        )

    async def backfill_nulls(self, table: str, column: str, default_literal: str) -> int:
        validate_identifier(table, "table name")
        validate_identifier(column, "column name")

        value = parse_default_literal(default_literal)
        if value is None:
            return 0

        _, _, headers = await self._request(
            "PATCH",
            table,
            params={column: "is.null"},
            payload={column: value},
            headers={"Prefer": "return=minimal, count=exact"},
        )
        updated = parse_content_range(headers.get("Content-Range"))

        logger.debug(f"Backfilled {updated} rows of {table}.{column}")
        return updated

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def __repr__(self) -> str:
        return f"RestGateway(url={self.config.url}, schema={self.config.schema_name})"
