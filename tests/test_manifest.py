"""Tests for manifest building and (de)serialization."""

import json
from datetime import datetime, timezone

import pytest

from db_snapshot.backup.manifest import (
    APP_NAME,
    MANIFEST_FILE,
    SCHEMA_VERSION,
    build_manifest,
    read_manifest,
    write_manifest,
)

CREATED_AT = datetime(2026, 1, 15, 2, 0, tzinfo=timezone.utc)


def _build(**overrides):
    kwargs = dict(
        table_order=["brands", "models"],
        table_counts={"models": 2, "brands": 3},
        checksums={"brands": "a" * 64, "models": "b" * 64},
        created_by=7,
        db_version="postgresql 16.2",
        created_at=CREATED_AT,
    )
    kwargs.update(overrides)
    return build_manifest(**kwargs)


class TestBuildManifest:

    def test_fields(self):
        manifest = _build()
        assert manifest.app_name == APP_NAME
        assert manifest.schema_version == SCHEMA_VERSION
        assert manifest.created_at == "2026-01-15T02:00:00+00:00"
        assert manifest.created_by == 7
        assert manifest.table_order == ["brands", "models"]
        assert manifest.total_records == 5

    def test_deterministic_for_same_inputs(self):
        assert _build() == _build()

    def test_maps_follow_table_order(self):
        manifest = _build()
        assert list(manifest.table_counts) == ["brands", "models"]

    def test_created_at_defaults_to_now(self):
        manifest = _build(created_at=None)
        parsed = datetime.fromisoformat(manifest.created_at)
        assert parsed.tzinfo is not None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"table_counts": {"brands": 3}},
            {"checksums": {"brands": "a" * 64, "models": "b" * 64, "extra": "c"}},
            {"table_order": ["brands", "brands"]},
        ],
    )
    def test_inconsistent_inputs_rejected(self, overrides):
        with pytest.raises(ValueError):
            _build(**overrides)


class TestManifestFile:

    def test_camel_case_on_disk(self, tmp_path):
        path = write_manifest(_build(), tmp_path)

        assert path.name == MANIFEST_FILE
        data = json.loads(path.read_text(encoding="utf-8"))
        assert set(data) == {
            "appName",
            "schemaVersion",
            "createdAt",
            "createdBy",
            "tableOrder",
            "tableCounts",
            "checksums",
            "dbVersion",
        }
        assert data["tableCounts"] == {"brands": 3, "models": 2}

    def test_read_back(self, tmp_path):
        manifest = _build()
        write_manifest(manifest, tmp_path)
        assert read_manifest(tmp_path / MANIFEST_FILE) == manifest

    def test_missing_field_rejected(self, tmp_path):
        path = tmp_path / MANIFEST_FILE
        path.write_text(json.dumps({"appName": "x"}), encoding="utf-8")
        with pytest.raises(ValueError):
            read_manifest(path)
