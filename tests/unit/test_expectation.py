"""
Tests for schema expectations.
"""

import pytest
import yaml

from schemamend.exceptions import ConfigurationError
from schemamend.expectation import ColumnSpec, ForeignKey, SchemaExpectation


class TestColumnSpec:

    def test_definition_with_default(self):
        spec = ColumnSpec(name="tax_amount", type="DECIMAL(15,2)", default=0)
        assert spec.default == "0"
        assert spec.definition() == "tax_amount DECIMAL(15,2) DEFAULT 0"

    def test_boolean_default_from_yaml(self):
        spec = ColumnSpec(name="tax_inclusive", type="BOOLEAN", default=False)
        assert spec.definition() == "tax_inclusive BOOLEAN DEFAULT false"

    def test_not_null_and_reference(self):
        spec = ColumnSpec(
            name="invoice_id",
            type="UUID",
            nullable=False,
            references={"table": "invoices", "on_delete": "cascade"},
        )
        assert spec.definition() == (
            "invoice_id UUID NOT NULL REFERENCES invoices(id) ON DELETE CASCADE"
        )

    def test_reference_shorthand(self):
        spec = ColumnSpec(name="created_by", type="UUID", references="auth.users(id)")
        assert spec.references == ForeignKey(table="auth.users", column="id")

    def test_add_column_sql(self):
        spec = ColumnSpec(name="status", type="VARCHAR(50)", default="'draft'")
        assert spec.add_column_sql("quotations") == (
            "ALTER TABLE quotations ADD COLUMN IF NOT EXISTS status VARCHAR(50) DEFAULT 'draft'"
        )

    @pytest.mark.parametrize(
        "fields",
        [
            {"name": "bad name", "type": "TEXT"},
            {"name": "ok", "type": "TEXT; DROP TABLE x"},
            {"name": "ok", "type": "TEXT", "default": "0; DROP TABLE x"},
            {"name": "ok", "type": "UUID", "references": "invoices(id); --"},
            {"name": "ok", "type": "UUID", "references": {"table": "invoices", "on_delete": "explode"}},
        ],
    )
    def test_invalid_specs(self, fields):
        with pytest.raises(ValueError):
            ColumnSpec(**fields)


class TestSchemaExpectation:

    def test_from_dict_preserves_order(self):
        expectation = SchemaExpectation.from_dict(
            {
                "tables": {
                    "quotations": [
                        {"name": "valid_until", "type": "DATE"},
                        {"name": "status", "type": "VARCHAR(50)"},
                    ],
                    "invoices": [{"name": "lpo_number", "type": "VARCHAR(100)"}],
                }
            }
        )

        assert [(t, c.name) for t, c in expectation.iter_columns()] == [
            ("quotations", "valid_until"),
            ("quotations", "status"),
            ("invoices", "lpo_number"),
        ]
        assert len(expectation) == 3

    def test_duplicate_column_rejected(self):
        with pytest.raises(ConfigurationError, match="declared twice"):
            SchemaExpectation.from_dict(
                {"orders": [{"name": "a", "type": "TEXT"}, {"name": "a", "type": "TEXT"}]}
            )

    def test_invalid_table_name(self):
        with pytest.raises(ConfigurationError):
            SchemaExpectation.from_dict({"orders;": [{"name": "a", "type": "TEXT"}]})

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "expectation.yaml"
        path.write_text(
            yaml.safe_dump({"tables": {"orders": [{"name": "tax_amount", "type": "NUMERIC", "default": 0}]}})
        )

        expectation = SchemaExpectation.from_yaml(path)

        assert expectation.tables["orders"][0].default == "0"

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            SchemaExpectation.from_yaml(tmp_path / "nope.yaml")

    def test_from_yaml_invalid(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("tables: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            SchemaExpectation.from_yaml(path)

    def test_builtin_business(self):
        expectation = SchemaExpectation.load("builtin:business")

        assert "quotations" in expectation.tables
        currency = next(c for c in expectation.tables["companies"] if c.name == "currency")
        assert currency.definition() == "currency VARCHAR(3) DEFAULT 'KES'"
        invoice_id = expectation.tables["payments"][0]
        assert invoice_id.definition() == "invoice_id UUID REFERENCES invoices(id)"

    def test_unknown_builtin(self):
        with pytest.raises(ConfigurationError, match="Unknown builtin"):
            SchemaExpectation.builtin("nonexistent")

    def test_merge(self):
        first = SchemaExpectation.from_dict({"orders": [{"name": "a", "type": "TEXT"}]})
        second = SchemaExpectation.from_dict(
            {
                "orders": [{"name": "a", "type": "TEXT"}, {"name": "b", "type": "DATE"}],
                "invoices": [{"name": "c", "type": "TEXT"}],
            }
        )

        merged = first.merge(second)

        assert [(t, c.name) for t, c in merged.iter_columns()] == [
            ("orders", "a"),
            ("orders", "b"),
            ("invoices", "c"),
        ]
        # Inputs are untouched
        assert len(first) == 1

    def test_merge_conflict(self):
        first = SchemaExpectation.from_dict({"orders": [{"name": "a", "type": "TEXT"}]})
        second = SchemaExpectation.from_dict({"orders": [{"name": "a", "type": "VARCHAR(10)"}]})

        with pytest.raises(ConfigurationError, match="Conflicting definitions"):
            first.merge(second)

    def test_load_all(self, tmp_path):
        path = tmp_path / "extra.yaml"
        path.write_text(yaml.safe_dump({"shipments": [{"name": "carrier", "type": "TEXT"}]}))

        merged = SchemaExpectation.load_all(["builtin:business", str(path)])

        assert "shipments" in merged.tables
        assert "quotations" in merged.tables
