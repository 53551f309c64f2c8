"""
Classification of remote error payloads.

The hosted platform's error taxonomy is not contractually stable: the same
condition can surface as a PostgreSQL SQLSTATE, a PostgREST ``PGRST`` code,
a bare message, or a JSON payload returned by a home-grown ``exec_sql``
function. Every place that needs to know "was this a missing column?" or
"does this entry point exist?" asks this module, and only this module
matches message text.
"""

import re
from enum import Enum
from typing import Any, NamedTuple, Optional

from .exceptions import DatabaseConnectionError


class ProbeFailure(str, Enum):
    """Why a probe read failed."""

    COLUMN_MISSING = "column_missing"
    TABLE_MISSING = "table_missing"
    OTHER = "other"


class ChannelOutcome(str, Enum):
    """Result of running a statement through an execution channel."""

    OK = "ok"
    ALREADY_EXISTS = "already_exists"
    CHANNEL_MISSING = "channel_missing"
    REJECTED = "rejected"


class ChannelVerdict(NamedTuple):
    outcome: ChannelOutcome
    reason: Optional[str] = None


COLUMN_MISSING_CODES = {"42703", "PGRST204"}
TABLE_MISSING_CODES = {"42P01", "PGRST205"}
FUNCTION_MISSING_CODES = {"42883", "PGRST202"}
ALREADY_EXISTS_CODES = {"42701", "42P07", "42710"}

_COLUMN_MISSING_TEXT = re.compile(
    r"column .* does not exist|could not find the '.*' column", re.IGNORECASE
)
_TABLE_MISSING_TEXT = re.compile(
    r"relation .* does not exist|could not find the table|table .* does not exist",
    re.IGNORECASE,
)
_FUNCTION_MISSING_TEXT = re.compile(
    r"function .* does not exist|could not find the function|no function matches",
    re.IGNORECASE,
)
_ALREADY_EXISTS_TEXT = re.compile(r"already exists", re.IGNORECASE)
_ERROR_TEXT = re.compile(r"\berror\b|\bfailed\b|permission denied", re.IGNORECASE)


def error_code(exc: Optional[BaseException]) -> Optional[str]:
    code = getattr(exc, "code", None)
    return str(code) if code else None


def error_text(exc: Optional[BaseException]) -> str:
    """Message plus hint and details, for text matching."""
    if exc is None:
        return ""
    parts = [getattr(exc, "message", None) or str(exc)]
    for attr in ("hint", "remote_details"):
        value = getattr(exc, attr, None)
        if value:
            parts.append(str(value))
    return " ".join(parts)


def classify_probe_error(exc: BaseException) -> ProbeFailure:
    """Classify the error raised by a ``SELECT <column> FROM <table>`` probe."""
    code = error_code(exc)
    if code in COLUMN_MISSING_CODES:
        return ProbeFailure.COLUMN_MISSING
    if code in TABLE_MISSING_CODES:
        return ProbeFailure.TABLE_MISSING

    text = error_text(exc)
    # 'column "x" of relation "y" does not exist' names both; column wins
    if _COLUMN_MISSING_TEXT.search(text):
        return ProbeFailure.COLUMN_MISSING
    if _TABLE_MISSING_TEXT.search(text):
        return ProbeFailure.TABLE_MISSING

    return ProbeFailure.OTHER


def payload_error(data: Any) -> Optional[str]:
    """Error message carried inside a successful RPC response, if any."""
    if isinstance(data, dict):
        if data.get("success") is False or data.get("error"):
            return str(data.get("error") or data.get("message") or "function reported failure")
        return None

    if isinstance(data, list) and len(data) == 1 and isinstance(data[0], dict):
        return payload_error(data[0])

    if isinstance(data, str):
        if _ALREADY_EXISTS_TEXT.search(data) or _ERROR_TEXT.search(data):
            return data

    return None


def classify_channel_result(
    exc: Optional[BaseException],
    data: Any = None,
    function: Optional[str] = None,
) -> ChannelVerdict:
    """
    Classify the result of executing a statement through a channel.

    Args:
        exc: Exception raised by the channel, or None on success
        data: Result payload returned by the channel
        function: Remote function backing the channel, if any. A missing
            function error only counts as a missing channel when it names
            this function (the statement itself may call a missing one).
    """
    if exc is not None:
        text = error_text(exc)

        if isinstance(exc, DatabaseConnectionError):
            return ChannelVerdict(ChannelOutcome.REJECTED, text)

        code = error_code(exc)
        if code == "PGRST202":
            return ChannelVerdict(ChannelOutcome.CHANNEL_MISSING, text)
        if code in FUNCTION_MISSING_CODES or _FUNCTION_MISSING_TEXT.search(text):
            if function is None or function.lower() in text.lower():
                return ChannelVerdict(ChannelOutcome.CHANNEL_MISSING, text)
            return ChannelVerdict(ChannelOutcome.REJECTED, text)

        if code in ALREADY_EXISTS_CODES or _ALREADY_EXISTS_TEXT.search(text):
            return ChannelVerdict(ChannelOutcome.ALREADY_EXISTS, text)

        return ChannelVerdict(ChannelOutcome.REJECTED, text)

    message = payload_error(data)
    if message is None:
        return ChannelVerdict(ChannelOutcome.OK)
    if _ALREADY_EXISTS_TEXT.search(message):
        return ChannelVerdict(ChannelOutcome.ALREADY_EXISTS, message)
    return ChannelVerdict(ChannelOutcome.REJECTED, message)
