"""Tests for backend registry."""

from pathlib import Path

import pytest

from memproto.core.config import BackendSpec, Settings
from memproto.core.errors import ValidationFailure
from memproto.memory.base import StorageTier
from memproto.memory.inmemory import InMemoryBackend
from memproto.memory.registry import (
    BACKEND_FACTORIES,
    create_backend,
    default_backends_file,
    load_backend_specs,
    register_backend_type,
    resolve_backend_specs,
)
from memproto.memory.sqlite import SQLiteBackend


def test_packaged_backends_file():
    """Bundled YAML lists a working set and a durable archive."""
    specs = load_backend_specs(default_backends_file())

    assert [s.name for s in specs] == ["working-set", "archive"]
    assert specs[0].tier == StorageTier.MAIN_CONTEXT
    assert specs[1].backend == "sqlite"
    assert specs[1].tier == StorageTier.EXTERNAL_CONTEXT
    assert specs[1].priority == 2


def test_create_in_memory_backend(tmp_path: Path):
    settings = Settings(_env_file=None, data_dir=tmp_path)
    backend = create_backend(BackendSpec(name="scratch", tier=StorageTier.VECTOR_STORE), settings)

    assert isinstance(backend, InMemoryBackend)
    assert backend.name == "scratch"
    assert backend.tier == StorageTier.VECTOR_STORE


def test_sqlite_path_defaults_to_data_dir(tmp_path: Path):
    settings = Settings(_env_file=None, data_dir=tmp_path)
    backend = create_backend(BackendSpec(name="archive", backend="sqlite"), settings)

    assert isinstance(backend, SQLiteBackend)
    assert backend.db_path == tmp_path / "archive.db"


def test_sqlite_path_option(tmp_path: Path):
    settings = Settings(_env_file=None, data_dir=tmp_path)
    spec = BackendSpec(name="archive", backend="sqlite", options={"path": str(tmp_path / "custom.db")})

    assert create_backend(spec, settings).db_path == tmp_path / "custom.db"


def test_unknown_backend_kind(tmp_path: Path):
    settings = Settings(_env_file=None, data_dir=tmp_path)
    with pytest.raises(ValidationFailure):
        create_backend(BackendSpec(name="x", backend="cassandra"), settings)


def test_resolve_prefers_backends_file(tmp_path: Path):
    backends_file = tmp_path / "backends.yaml"
    backends_file.write_text(
        "backends:\n"
        "  - name: only\n"
        "    backend: in-memory\n"
        "    tier: vector_store\n"
    )
    settings = Settings(_env_file=None, backends_file=backends_file)

    specs = resolve_backend_specs(settings)

    assert [s.name for s in specs] == ["only"]
    assert specs[0].tier == StorageTier.VECTOR_STORE


def test_resolve_falls_back_to_settings():
    settings = Settings(_env_file=None)
    assert [s.name for s in resolve_backend_specs(settings)] == ["in-memory"]


def test_register_backend_type(monkeypatch, tmp_path: Path):
    monkeypatch.setitem(BACKEND_FACTORIES, "graph", BACKEND_FACTORIES["in-memory"])
    register_backend_type("graph", lambda spec, settings: InMemoryBackend(spec.name, StorageTier.GRAPH_STORE))

    backend = create_backend(BackendSpec(name="g", backend="graph"), Settings(_env_file=None, data_dir=tmp_path))
    assert backend.tier == StorageTier.GRAPH_STORE
