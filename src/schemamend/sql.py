"""
SQL text helpers for schemamend.

All statements schemamend renders come from here. Identifiers are
validated rather than quoted, so rendered statements match what an
operator would type into a console.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

from .exceptions import ValidationError


IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
QUALIFIED_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

_NUMBER_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")
_STRING_RE = re.compile(r"^'((?:[^']|'')*)'(::[A-Za-z_][A-Za-z0-9_ ]*(\(\d+(,\s*\d+)?\))?)?$")
_CAST_RE = re.compile(r"^(.+?)::[A-Za-z_][A-Za-z0-9_ ]*(\(\d+(,\s*\d+)?\))?$")


def validate_identifier(name: str, what: str = "identifier", qualified: bool = False) -> str:
    """
    Validate a table/column/function name.

    Args:
        name: Name to validate
        what: Description used in the error message
        qualified: Allow a single ``schema.`` prefix

    Raises:
        ValidationError: If the name is empty or not a plain identifier
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{what} must be a non-empty string")

    pattern = QUALIFIED_IDENTIFIER_RE if qualified else IDENTIFIER_RE
    if not pattern.match(name):
        raise ValidationError(f"Invalid {what}: {name!r}")

    return name


def probe_statement(table: str, column: str) -> str:
    """Minimal read used to test whether a column exists."""
    return f"SELECT {column} FROM {table} LIMIT 1"


def add_column_statement(table: str, column_definition: str) -> str:
    """Conditional ADD COLUMN; safe to run when the column already exists."""
    return f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column_definition}"


def backfill_statement(table: str, column: str, default_literal: str) -> str:
    """UPDATE that only touches rows where the column is still NULL."""
    return f"UPDATE {table} SET {column} = {default_literal} WHERE {column} IS NULL"


def function_call_statement(function: str, params: Sequence[str]) -> str:
    """Call a function with named parameters bound to $1..$n."""
    arguments = ", ".join(f"{name} := ${i}" for i, name in enumerate(params, start=1))
    return f"SELECT {function}({arguments})"


def parse_default_literal(literal: str) -> Optional[Any]:
    """
    Convert a constant SQL default into a JSON-compatible value.

    Supports numbers, quoted strings (with optional ``::type`` cast),
    booleans and NULL. Expressions such as ``NOW()`` or
    ``gen_random_uuid()`` cannot be sent as row values and are rejected.

    Raises:
        ValidationError: If the literal is not a constant
    """
    if literal is None:
        return None

    text = literal.strip()

    string_match = _STRING_RE.match(text)
    if string_match:
        return string_match.group(1).replace("''", "'")

    # Strip a trailing cast from non-string constants (e.g. 0::numeric)
    cast_match = _CAST_RE.match(text)
    if cast_match:
        text = cast_match.group(1).strip()

    if _NUMBER_RE.match(text):
        if "." not in text:
            return int(text)
        try:
            return float(Decimal(text))
        except InvalidOperation:
            raise ValidationError(f"Invalid numeric default: {literal!r}")

    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None

    raise ValidationError(
        f"Default {literal!r} is an expression and cannot be written as a row value"
    )
