"""Persistence of scopes and function modules in a key-value store.

Two independent records are kept:

- ``SCOPES_KEY``: the ordered list of scopes with their lines
- ``MODULES_KEY``: the flat, global list of function modules

Older data embedded a ``functions`` list in every scope. Loading lifts those
into the global module record (see ``migrate_legacy_scopes``).
"""

from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import TypeAdapter, ValidationError

from ._enums import ColorTag
from ._line_parser import is_valid_identifier
from ._models import FunctionModule, Scope, utc_now

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

SCOPES_KEY = "calculator-v2-scopes"
MODULES_KEY = "calculator-v2-function-sets"
LEGACY_FUNCTIONS_FIELD = "functions"

# Fixed namespace so a legacy function always migrates to the same module id.
_LEGACY_MODULE_NAMESPACE = uuid.UUID("6b0f4b8e-52a4-4a43-9d07-3c1f3a2a9c55")

_scopes_adapter = TypeAdapter(list[Scope])
_modules_adapter = TypeAdapter(list[FunctionModule])
_raw_adapter = TypeAdapter(list[dict[str, Any]])


class KeyValueStore(Protocol):
    """String values under string keys."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """A store kept in a dict; useful for tests and embedding."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonDirectoryStore:
    """A store that keeps each key in ``<directory>/<key>.json``."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not re.fullmatch(r"[A-Za-z0-9_.-]+", key):
            msg = f"Invalid store key: {key!r}"
            raise ValueError(msg)
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# =============================================================================
# Raw records
# =============================================================================


def _load_raw(store: KeyValueStore, key: str) -> list[dict[str, Any]]:
    try:
        data = store.get(key)
    except (OSError, UnicodeDecodeError):
        logger.exception("Failed to read '%s'; treating it as empty", key)
        return []
    if data is None:
        return []
    try:
        return _raw_adapter.validate_json(data)
    except ValidationError:
        logger.exception("Failed to load '%s'; treating it as empty", key)
        return []


def _save_raw(store: KeyValueStore, key: str, records: list[dict[str, Any]]) -> None:
    store.set(key, _raw_adapter.dump_json(records).decode())


# =============================================================================
# Legacy migration
# =============================================================================


def _legacy_module_id(scope_id: str, function_name: str) -> str:
    return f"module-{uuid.uuid5(_LEGACY_MODULE_NAMESPACE, f'{scope_id}:{function_name}').hex}"


def _module_name_for(raw_name: object, taken: set[str]) -> str:
    """Turn a legacy function name into a valid, unused module name."""
    name = re.sub(r"[^A-Za-z0-9_]", "_", str(raw_name or "").strip()) or "module"
    if not is_valid_identifier(name):
        name = f"_{name}"
    candidate = name
    suffix = 2
    while candidate in taken:
        candidate = f"{name}_{suffix}"
        suffix += 1
    return candidate


def migrate_legacy_scopes(
    raw_scopes: Sequence[dict[str, Any]],
    raw_modules: Sequence[dict[str, Any]],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]], bool]:
    """Lift functions embedded in scopes into the global module record.

    This is a pure function on raw (JSON-shaped) records. Each embedded
    function becomes a module with an id derived from the scope id and the
    function name, so migrating the same data twice yields the same ids and
    merging by id never duplicates a module. The embedded field is removed
    from every scope.

    Args:
        raw_scopes: Scope records as stored.
        raw_modules: Module records as stored.

    Returns:
        Tuple of (scopes without embedded functions, merged modules, whether
        anything changed).

    """
    modules = [dict(module) for module in raw_modules]
    known_ids = {module.get("id") for module in modules}
    taken_names = {str(module.get("name")) for module in modules}
    scopes: list[dict[str, Any]] = []
    changed = False

    for raw_scope in raw_scopes:
        if LEGACY_FUNCTIONS_FIELD not in raw_scope:
            scopes.append(raw_scope)
            continue

        changed = True
        scope = {k: v for k, v in raw_scope.items() if k != LEGACY_FUNCTIONS_FIELD}
        scopes.append(scope)
        legacy_functions = raw_scope.get(LEGACY_FUNCTIONS_FIELD) or []
        scope_id = str(scope.get("id", scope.get("name", "")))

        for legacy in legacy_functions:
            if not isinstance(legacy, dict):
                logger.warning("Skipping malformed legacy function in scope '%s'", scope_id)
                continue
            module_id = _legacy_module_id(scope_id, str(legacy.get("name", "")))
            if module_id in known_ids:
                continue

            color = legacy.get("colorTag")
            if color not in ColorTag._value2member_map_:
                color = ColorTag.for_position(len(modules)).value

            name = _module_name_for(legacy.get("name"), taken_names)
            taken_names.add(name)
            known_ids.add(module_id)
            modules.append(
                {
                    "id": module_id,
                    "name": name,
                    "sourceCode": legacy.get("code", ""),
                    "isSaved": bool(legacy.get("isSaved", True)),
                    "colorTag": color,
                    "createdAt": scope.get("createdAt") or utc_now().isoformat(),
                },
            )
            logger.info("Migrated legacy function '%s' of scope '%s' to module '%s'", legacy.get("name"), scope_id, name)

    return scopes, modules, changed


# =============================================================================
# Typed records
# =============================================================================


def save_scopes(store: KeyValueStore, scopes: Sequence[Scope]) -> None:
    store.set(SCOPES_KEY, _scopes_adapter.dump_json(list(scopes), by_alias=True).decode())
    logger.debug("Saved %d scope(s)", len(scopes))


def save_modules(store: KeyValueStore, modules: Sequence[FunctionModule]) -> None:
    store.set(MODULES_KEY, _modules_adapter.dump_json(list(modules), by_alias=True).decode())
    logger.debug("Saved %d module(s)", len(modules))


def _validate_records[T: (Scope, FunctionModule)](model: type[T], raw: list[dict[str, Any]], key: str) -> list[T]:
    records: list[T] = []
    for idx, item in enumerate(raw):
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("Skipping invalid record %d under '%s': %s", idx, key, e)
    return records


def load_workspace_records(store: KeyValueStore) -> tuple[list[Scope], list[FunctionModule]]:
    """Load scopes and modules, migrating legacy data first.

    When a migration happened the migrated records are written back, so a
    later load finds nothing left to migrate.
    """
    raw_scopes, raw_modules, changed = migrate_legacy_scopes(
        _load_raw(store, SCOPES_KEY),
        _load_raw(store, MODULES_KEY),
    )
    scopes = _validate_records(Scope, raw_scopes, SCOPES_KEY)
    modules = _validate_records(FunctionModule, raw_modules, MODULES_KEY)

    if changed:
        # Raw records: entries that failed validation stay in the store.
        logger.info("Persisting migrated records")
        _save_raw(store, SCOPES_KEY, raw_scopes)
        _save_raw(store, MODULES_KEY, raw_modules)

    return scopes, modules


def load_scopes(store: KeyValueStore) -> list[Scope]:
    """Load the scopes record (legacy data is migrated on the way)."""
    return load_workspace_records(store)[0]


def load_modules(store: KeyValueStore) -> list[FunctionModule]:
    """Load the function modules record (legacy data is migrated on the way)."""
    return load_workspace_records(store)[1]


def migrate_store(store: KeyValueStore) -> bool:
    """Run the legacy migration on *store* and persist the result.

    Returns:
        Whether any legacy data was found.

    """
    _, _, changed = migrate_legacy_scopes(_load_raw(store, SCOPES_KEY), _load_raw(store, MODULES_KEY))
    if changed:
        load_workspace_records(store)
    return changed
