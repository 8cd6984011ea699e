"""Tests for TableDef validation and TableRegistry ordering rules."""

import pytest
from pydantic import ValidationError

from db_snapshot.backup.errors import RegistryError
from db_snapshot.backup.models import ForeignKey, TableDef
from db_snapshot.backup.registry import PROTECTED_TABLES, TableRegistry

from conftest import sample_tables


class TestTableDef:
    """TableDef field validation."""

    def test_defaults(self):
        t = TableDef(name="brands")
        assert t.pk == "id"
        assert t.key_type == "integer"
        assert t.timestamp_fields == ["created_at", "updated_at"]
        assert t.redact_fields == []
        assert t.references == []

    def test_references_include_parent_and_optional(self):
        t = TableDef(
            name="vehicles",
            parent=ForeignKey(table="models", field="model_id"),
            optional_refs=[ForeignKey(table="colors", field="color_id")],
        )
        assert [r.table for r in t.references] == ["models", "colors"]

    @pytest.mark.parametrize("name", ["brands; DROP TABLE x", "1abc", "a-b", ""])
    def test_rejects_non_identifier_names(self, name):
        with pytest.raises(ValidationError):
            TableDef(name=name)

    def test_rejects_non_identifier_timestamp_field(self):
        with pytest.raises(ValidationError):
            TableDef(name="brands", timestamp_fields=["created at"])

    def test_rejects_unknown_key_type(self):
        with pytest.raises(ValidationError):
            TableDef(name="brands", key_type="float")


class TestTableRegistry:
    """Registry construction checks and ordering."""

    def test_preserves_order(self):
        registry = TableRegistry(sample_tables())
        assert registry.names == ["user_roles", "users", "brands", "models"]
        assert len(registry) == 4
        assert "brands" in registry
        assert "ghosts" not in registry

    def test_get(self):
        registry = TableRegistry(sample_tables())
        assert registry.get("users").redact_fields == ["password"]
        assert registry.get("ghosts") is None

    def test_duplicate_table_rejected(self):
        with pytest.raises(RegistryError, match="Duplicate"):
            TableRegistry([TableDef(name="brands"), TableDef(name="brands")])

    def test_forward_reference_rejected(self):
        """A child registered before its parent is an error."""
        with pytest.raises(RegistryError, match="brands"):
            TableRegistry([
                TableDef(name="models", parent=ForeignKey(table="brands", field="brand_id")),
                TableDef(name="brands"),
            ])

    def test_unknown_optional_reference_rejected(self):
        with pytest.raises(RegistryError, match="colors"):
            TableRegistry([
                TableDef(
                    name="vehicles",
                    optional_refs=[ForeignKey(table="colors", field="color_id")],
                ),
            ])

    def test_self_reference_allowed(self):
        registry = TableRegistry([
            TableDef(
                name="categories",
                optional_refs=[ForeignKey(table="categories", field="parent_id")],
            ),
        ])
        assert registry.names == ["categories"]

    @pytest.mark.parametrize("key_type", ["uuid", "text"])
    def test_non_numeric_key_rejected(self, key_type):
        """Keyset pagination needs a strictly increasing numeric key."""
        with pytest.raises(RegistryError, match="numeric"):
            TableRegistry([TableDef(name="sessions", key_type=key_type)])

    def test_protected_defaults(self):
        registry = TableRegistry(sample_tables())
        assert registry.protected == frozenset(PROTECTED_TABLES)
        assert registry.is_protected("users")
        assert registry.is_protected("user_roles")
        assert not registry.is_protected("brands")


class TestDeletionOrder:
    """Replace-mode deletion order."""

    def test_reverse_order_without_protected(self):
        registry = TableRegistry(sample_tables())
        assert [t.name for t in registry.deletion_order()] == ["models", "brands"]

    def test_custom_protected_set(self):
        registry = TableRegistry(sample_tables(), protected=["brands"])
        assert [t.name for t in registry.deletion_order()] == [
            "models",
            "users",
            "user_roles",
        ]
