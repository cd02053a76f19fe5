"""Backend registry - builds storage backends from startup specs."""

from collections.abc import Callable
from pathlib import Path

import yaml

from memproto.core.config import BackendSpec, Settings
from memproto.core.errors import ValidationFailure
from memproto.core.logging import get_logger
from memproto.memory.backend import StorageBackend
from memproto.memory.inmemory import InMemoryBackend
from memproto.memory.sqlite import SQLiteBackend

logger = get_logger("memory.registry")

BackendFactory = Callable[[BackendSpec, Settings], StorageBackend]


def _in_memory(spec: BackendSpec, settings: Settings) -> StorageBackend:
    return InMemoryBackend(name=spec.name, tier=spec.tier)


def _sqlite(spec: BackendSpec, settings: Settings) -> StorageBackend:
    db_path = spec.options.get("path") or settings.data_dir / f"{spec.name}.db"
    return SQLiteBackend(db_path, name=spec.name, tier=spec.tier)


BACKEND_FACTORIES: dict[str, BackendFactory] = {
    "in-memory": _in_memory,
    "sqlite": _sqlite,
}


def register_backend_type(kind: str, factory: BackendFactory) -> None:
    """Make a new backend kind available to specs."""
    if kind in BACKEND_FACTORIES:
        logger.warning(f"Backend kind {kind} already registered, overwriting")
    BACKEND_FACTORIES[kind] = factory


def create_backend(spec: BackendSpec, settings: Settings) -> StorageBackend:
    factory = BACKEND_FACTORIES.get(spec.backend)
    if factory is None:
        known = ", ".join(sorted(BACKEND_FACTORIES))
        raise ValidationFailure(f"Unknown backend kind for {spec.name}: {spec.backend} (known: {known})")
    return factory(spec, settings)


def load_backend_specs(path: Path | str) -> list[BackendSpec]:
    """Load backend specs from a YAML file with a top-level ``backends`` list."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    specs = [BackendSpec(**entry) for entry in data.get("backends", [])]
    logger.info(f"Loaded {len(specs)} backend specs from {path}")
    return specs


def resolve_backend_specs(settings: Settings) -> list[BackendSpec]:
    """Specs from ``backends_file`` when set, otherwise from settings."""
    if settings.backends_file:
        return load_backend_specs(settings.backends_file)
    return list(settings.backends)


def default_backends_file() -> Path:
    return Path(__file__).parent.parent / "configs" / "backends.yaml"
