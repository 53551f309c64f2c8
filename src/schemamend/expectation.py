"""
Declarative schema expectations.

An expectation maps table names to the ordered columns those tables are
expected to have. Expectations are hand-authored YAML, bundled with the
package (``builtin:<name>``) or built from plain mappings.
"""

import re
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigurationError
from .sql import IDENTIFIER_RE, QUALIFIED_IDENTIFIER_RE, add_column_statement


BUILTIN_PREFIX = "builtin:"

_TYPE_RE = re.compile(
    r"^[A-Za-z][A-Za-z0-9_ ]*(\(\s*\d+(\s*,\s*\d+)?\s*\))?(\[\])?$"
)
_REFERENCE_RE = re.compile(r"^\s*([A-Za-z0-9_.]+)\s*(?:\(\s*([A-Za-z0-9_]+)\s*\))?\s*$")
_ON_DELETE_ACTIONS = {"CASCADE", "SET NULL", "SET DEFAULT", "RESTRICT", "NO ACTION"}


class ForeignKey(BaseModel):
    """Foreign-key reference of a column."""

    table: str = Field(..., description="Referenced table, optionally schema-qualified")
    column: str = Field("id", description="Referenced column")
    on_delete: Optional[str] = Field(None, description="ON DELETE action")

    @field_validator("table")
    @classmethod
    def validate_table(cls, v: str) -> str:
        if not QUALIFIED_IDENTIFIER_RE.match(v):
            raise ValueError(f"invalid referenced table: {v!r}")
        return v

    @field_validator("column")
    @classmethod
    def validate_column(cls, v: str) -> str:
        if not IDENTIFIER_RE.match(v):
            raise ValueError(f"invalid referenced column: {v!r}")
        return v

    @field_validator("on_delete")
    @classmethod
    def validate_on_delete(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        action = " ".join(v.upper().split())
        if action not in _ON_DELETE_ACTIONS:
            raise ValueError(f"on_delete must be one of {sorted(_ON_DELETE_ACTIONS)}")
        return action

    @classmethod
    def parse(cls, value: str) -> "ForeignKey":
        """Parse the ``table(column)`` shorthand."""
        match = _REFERENCE_RE.match(value)
        if not match:
            raise ValueError(f"invalid reference: {value!r}")
        table, column = match.groups()
        return cls(table=table, column=column or "id")

    def render(self) -> str:
        clause = f"REFERENCES {self.table}({self.column})"
        if self.on_delete:
            clause += f" ON DELETE {self.on_delete}"
        return clause


class ColumnSpec(BaseModel):
    """Expected column: name, SQL type, nullability, default and reference."""

    name: str
    type: str
    nullable: bool = True
    default: Optional[str] = Field(None, description="Literal SQL default expression")
    references: Optional[ForeignKey] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not IDENTIFIER_RE.match(v or ""):
            raise ValueError(f"invalid column name: {v!r}")
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = " ".join((v or "").split())
        if not _TYPE_RE.match(v):
            raise ValueError(f"invalid column type: {v!r}")
        return v

    @field_validator("default", mode="before")
    @classmethod
    def coerce_default(cls, v: Any) -> Any:
        # YAML turns `default: false` and `default: 0` into Python values
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("default")
    @classmethod
    def validate_default(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (not v.strip() or ";" in v):
            raise ValueError(f"invalid default expression: {v!r}")
        return v

    @field_validator("references", mode="before")
    @classmethod
    def parse_reference(cls, v: Any) -> Any:
        if isinstance(v, str):
            return ForeignKey.parse(v)
        return v

    def definition(self) -> str:
        """Column definition as it appears after ``ADD COLUMN``."""
        parts = [self.name, self.type]
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        if not self.nullable:
            parts.append("NOT NULL")
        if self.references is not None:
            parts.append(self.references.render())
        return " ".join(parts)

    def add_column_sql(self, table: str) -> str:
        return add_column_statement(table, self.definition())


class SchemaExpectation(BaseModel):
    """Mapping of table name to ordered column specifications."""

    tables: Dict[str, List[ColumnSpec]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_tables(self) -> "SchemaExpectation":
        for table, columns in self.tables.items():
            if not IDENTIFIER_RE.match(table):
                raise ValueError(f"invalid table name: {table!r}")
            seen = set()
            for column in columns:
                if column.name in seen:
                    raise ValueError(f"column {table}.{column.name} declared twice")
                seen.add(column.name)
        return self

    def __len__(self) -> int:
        return sum(len(columns) for columns in self.tables.values())

    def iter_columns(self) -> Iterator[Tuple[str, ColumnSpec]]:
        """Yield ``(table, spec)`` pairs in declaration order."""
        for table, columns in self.tables.items():
            for column in columns:
                yield table, column

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaExpectation":
        """
        Build an expectation from a mapping.

        Accepts either ``{"tables": {...}}`` or the table mapping itself.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Schema expectation must be a mapping")

        tables = data.get("tables", data)
        try:
            return cls(tables=tables)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid schema expectation: {e}")

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SchemaExpectation":
        """Load an expectation from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Expectation file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in expectation file {path}: {e}")

        return cls.from_dict(data)

    @classmethod
    def builtin(cls, name: str) -> "SchemaExpectation":
        """Load an expectation bundled with the package."""
        resource = resources.files("schemamend") / "expectations" / f"{name}.yaml"
        if not resource.is_file():
            raise ConfigurationError(f"Unknown builtin expectation: {name}")

        try:
            data = yaml.safe_load(resource.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid builtin expectation {name}: {e}")

        return cls.from_dict(data)

    @classmethod
    def load(cls, ref: str) -> "SchemaExpectation":
        """Load from a file path or a ``builtin:<name>`` reference."""
        if ref.startswith(BUILTIN_PREFIX):
            return cls.builtin(ref[len(BUILTIN_PREFIX):])
        return cls.from_yaml(ref)

    @classmethod
    def load_all(cls, refs: List[str]) -> "SchemaExpectation":
        """Load and merge several expectations, in order."""
        merged = cls()
        for ref in refs:
            merged = merged.merge(cls.load(ref))
        return merged

    def merge(self, other: "SchemaExpectation") -> "SchemaExpectation":
        """
        Combine two expectations.

        Columns declared by both must have identical definitions; anything
        else means the expectations disagree and is refused.

        Raises:
            ConfigurationError: On conflicting column definitions
        """
        tables: Dict[str, List[ColumnSpec]] = {
            table: list(columns) for table, columns in self.tables.items()
        }

        for table, columns in other.tables.items():
            existing = {c.name: c for c in tables.setdefault(table, [])}
            for column in columns:
                current = existing.get(column.name)
                if current is None:
                    tables[table].append(column)
                elif current != column:
                    raise ConfigurationError(
                        f"Conflicting definitions for {table}.{column.name}: "
                        f"'{current.definition()}' vs '{column.definition()}'"
                    )

        return SchemaExpectation(tables=tables)
