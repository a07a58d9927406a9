"""Tests for catalog persistence."""

import json
import os
import stat

import pytest

from ecowatch.catalog.models import Catalog, Project, Verdict, VerdictKind
from ecowatch.catalog.store import CatalogStore
from ecowatch.core.errors import CatalogError, PersistenceFailure


@pytest.fixture
def catalog():
    catalog = Catalog(projects=[
        Project.from_id("org/a"),
        Project.from_id("org/b", branch="master"),
    ])
    catalog.record("org/a", Verdict(kind=VerdictKind.SUCCESS))
    return catalog


def test_missing_file_is_empty_catalog(tmp_path):
    store = CatalogStore(tmp_path / "catalog.json")

    catalog = store.load()

    assert len(catalog) == 0
    assert not store.path.exists()


def test_save_then_load(tmp_path, catalog):
    store = CatalogStore(tmp_path / "db" / "catalog.json")

    store.save(catalog)
    loaded = store.load()

    assert loaded == catalog
    assert loaded.get("org/b").branch == "master"


def test_save_writes_readable_json(tmp_path, catalog):
    store = CatalogStore(tmp_path / "catalog.json")
    store.save(catalog)

    data = json.loads(store.path.read_text())

    assert data["version"] == 1
    assert [p["name"] for p in data["projects"]] == ["a", "b"]
    assert data["projects"][0]["verdict"]["kind"] == "success"


def test_save_leaves_no_temporary_files(tmp_path, catalog):
    store = CatalogStore(tmp_path / "catalog.json")

    store.save(catalog)
    store.save(catalog)

    assert [p.name for p in tmp_path.iterdir()] == ["catalog.json"]


def test_save_replaces_previous_document(tmp_path, catalog):
    store = CatalogStore(tmp_path / "catalog.json")
    store.save(Catalog())

    store.save(catalog)

    assert store.load().ids() == ["org/a", "org/b"]


def test_corrupt_file_raises(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text("{ not json")

    with pytest.raises(CatalogError):
        CatalogStore(path).load()


def test_invalid_document_raises(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"projects": [{"owner": "org"}]}))

    with pytest.raises(CatalogError):
        CatalogStore(path).load()


def test_unwritable_location_raises(tmp_path, catalog):
    """A failed write raises and leaves the old document in place."""
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = CatalogStore(blocker / "catalog.json")

    with pytest.raises(PersistenceFailure):
        store.save(catalog)

    assert blocker.read_text() == "a file, not a directory"


def test_save_keeps_existing_permissions(tmp_path, catalog):
    store = CatalogStore(tmp_path / "catalog.json")
    store.save(Catalog())
    store.path.chmod(0o644)

    store.save(catalog)

    assert stat.S_IMODE(store.path.stat().st_mode) == 0o644


def test_new_file_follows_umask(tmp_path, catalog):
    store = CatalogStore(tmp_path / "catalog.json")
    previous = os.umask(0o022)
    try:
        store.save(catalog)
    finally:
        os.umask(previous)

    assert stat.S_IMODE(store.path.stat().st_mode) == 0o644
