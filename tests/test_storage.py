"""Tests for persistence and the legacy migration."""

import json
from pathlib import Path

import pytest

from scopecalc._enums import ColorTag
from scopecalc._models import FunctionModule, Line, Scope
from scopecalc._storage import (
    MODULES_KEY,
    SCOPES_KEY,
    JsonDirectoryStore,
    MemoryStore,
    load_modules,
    load_scopes,
    load_workspace_records,
    migrate_legacy_scopes,
    migrate_store,
    save_modules,
    save_scopes,
)

LEGACY_SCOPES = [
    {
        "id": "scope-1",
        "name": "Geometry",
        "variables": [
            {"lineIndex": 0, "name": "a", "expression": "a = @helpers.double(2)", "value": 4, "error": None},
        ],
        "functions": [
            {"name": "helpers", "code": "function double(x) { return x * 2; }"},
            {"name": "my funcs", "code": "function one() { return 1; }", "colorTag": "pink"},
        ],
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
    },
    {
        "id": "scope-2",
        "name": "Plain",
        "variables": [],
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
    },
]


def _legacy_store() -> MemoryStore:
    return MemoryStore({SCOPES_KEY: json.dumps(LEGACY_SCOPES)})


class TestStores:
    """Tests for the key-value store implementations."""

    def test_memory_store(self) -> None:
        """Should get, set and delete keys in memory."""
        store = MemoryStore()
        assert store.get("k") is None
        store.set("k", "v")
        assert store.get("k") == "v"
        store.delete("k")
        store.delete("k")
        assert store.get("k") is None

    def test_json_directory_store(self, tmp_path: Path) -> None:
        """Should keep each key in its own JSON file."""
        store = JsonDirectoryStore(tmp_path / "data")
        assert store.get(SCOPES_KEY) is None
        store.set(SCOPES_KEY, "[]")
        assert (tmp_path / "data" / f"{SCOPES_KEY}.json").read_text() == "[]"
        assert store.get(SCOPES_KEY) == "[]"
        store.delete(SCOPES_KEY)
        assert store.get(SCOPES_KEY) is None

    def test_json_directory_store_rejects_path_keys(self, tmp_path: Path) -> None:
        """Should reject keys that would escape the directory."""
        with pytest.raises(ValueError, match="Invalid store key"):
            JsonDirectoryStore(tmp_path).get("../escape")


class TestSaveAndLoad:
    """Tests for saving and loading typed records."""

    def test_round_trip(self) -> None:
        """Should load back the records it saved."""
        store = MemoryStore()
        scope = Scope(name="Budget", lines=[Line.from_text("a = 1")])
        module = FunctionModule(name="geo", source_code="function f() { return 1; }", color_tag=ColorTag.GREEN)

        save_scopes(store, [scope])
        save_modules(store, [module])

        assert load_scopes(store) == [scope]
        assert load_modules(store) == [module]

    def test_records_use_camel_case(self) -> None:
        """Should store records with camelCase keys."""
        store = MemoryStore()
        save_modules(store, [FunctionModule(name="geo")])
        (record,) = json.loads(store.data[MODULES_KEY])
        assert "sourceCode" in record
        assert "source_code" not in record

    def test_missing_records_are_empty(self) -> None:
        """Should load nothing from an empty store."""
        assert load_workspace_records(MemoryStore()) == ([], [])

    def test_unreadable_record_is_empty(self, caplog: pytest.LogCaptureFixture) -> None:
        """Should treat malformed JSON as empty and log it."""
        store = MemoryStore({SCOPES_KEY: "{not json", MODULES_KEY: json.dumps({"not": "a list"})})
        assert load_workspace_records(store) == ([], [])
        assert "Failed to load" in caplog.text

    def test_invalid_record_is_skipped(self) -> None:
        """Should skip an invalid record and keep the rest."""
        store = MemoryStore({MODULES_KEY: json.dumps([{"name": "ok"}, {"name": "not valid"}])})
        assert [module.name for module in load_modules(store)] == ["ok"]

    def test_undecodable_file_is_empty(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Should treat a file that is not UTF-8 as empty and log it."""
        (tmp_path / f"{SCOPES_KEY}.json").write_bytes(b"\xff\xfe[]")
        assert load_workspace_records(JsonDirectoryStore(tmp_path)) == ([], [])
        assert "Failed to read" in caplog.text


class TestMigrateLegacyScopes:
    """Tests for migrate_legacy_scopes."""

    def test_functions_become_modules(self) -> None:
        """Should turn embedded functions into modules."""
        scopes, modules, changed = migrate_legacy_scopes(LEGACY_SCOPES, [])

        assert changed
        assert all("functions" not in scope for scope in scopes)
        assert [module["name"] for module in modules] == ["helpers", "my_funcs"]
        assert modules[0]["sourceCode"] == "function double(x) { return x * 2; }"
        assert modules[0]["colorTag"] == "blue"
        assert modules[1]["colorTag"] == "pink"

    def test_ids_are_deterministic(self) -> None:
        """Should derive the same module ids on every run."""
        _, first, _ = migrate_legacy_scopes(LEGACY_SCOPES, [])
        _, second, _ = migrate_legacy_scopes(LEGACY_SCOPES, [])
        assert [m["id"] for m in first] == [m["id"] for m in second]
        assert len({m["id"] for m in first}) == 2

    def test_merge_does_not_duplicate(self) -> None:
        """Should not duplicate modules that already exist."""
        _, modules, _ = migrate_legacy_scopes(LEGACY_SCOPES, [])
        _, merged, _ = migrate_legacy_scopes(LEGACY_SCOPES, modules)
        assert len(merged) == 2

    def test_name_clash_gets_suffix(self) -> None:
        """Should add a suffix to a clashing module name."""
        existing = [{"id": "module-x", "name": "helpers", "sourceCode": ""}]
        _, modules, _ = migrate_legacy_scopes(LEGACY_SCOPES, existing)
        assert [module["name"] for module in modules] == ["helpers", "helpers_2", "my_funcs"]

    def test_color_cycles_by_position(self) -> None:
        """Should pick the palette color by module position."""
        existing = [{"id": "module-x", "name": "other", "sourceCode": ""}]
        _, modules, _ = migrate_legacy_scopes(LEGACY_SCOPES[:1], existing)
        assert modules[1]["colorTag"] == "green"

    def test_nothing_to_migrate(self) -> None:
        """Should report no change without legacy data."""
        scopes, modules, changed = migrate_legacy_scopes(LEGACY_SCOPES[1:], [])
        assert not changed
        assert scopes == LEGACY_SCOPES[1:]
        assert modules == []

    def test_input_is_not_modified(self) -> None:
        """Should leave the input records alone."""
        migrate_legacy_scopes(LEGACY_SCOPES, [])
        assert "functions" in LEGACY_SCOPES[0]


class TestLoadWorkspaceRecords:
    """Tests for loading with migration."""

    def test_migrates_and_writes_back(self) -> None:
        """Should write migrated records back to the store."""
        store = _legacy_store()
        scopes, modules = load_workspace_records(store)

        assert [scope.name for scope in scopes] == ["Geometry", "Plain"]
        assert [module.name for module in modules] == ["helpers", "my_funcs"]
        assert "functions" not in store.data[SCOPES_KEY]
        assert len(json.loads(store.data[MODULES_KEY])) == 2

    def test_second_load_does_not_duplicate(self) -> None:
        """Should find nothing to migrate on a second load."""
        store = _legacy_store()
        _, first = load_workspace_records(store)
        _, second = load_workspace_records(store)
        assert [m.id for m in first] == [m.id for m in second]

    def test_repeated_legacy_data_does_not_duplicate(self) -> None:
        """Should not duplicate modules when legacy data comes back."""
        store = _legacy_store()
        load_workspace_records(store)
        # Legacy scopes written again by an older client.
        store.set(SCOPES_KEY, json.dumps(LEGACY_SCOPES))
        _, modules = load_workspace_records(store)
        assert len(modules) == 2

    def test_migrated_lines_are_readable(self) -> None:
        """Should read lines of migrated scopes."""
        scopes, _ = load_workspace_records(_legacy_store())
        assert scopes[0].lines[0].raw_expression == "a = @helpers.double(2)"
        assert len(scopes[1].lines) == 1

    def test_invalid_legacy_scope_stays_in_store(self) -> None:
        """Should keep an invalid legacy scope in the store."""
        broken = {"id": "scope-3", "variables": [], "functions": [{"name": "extra", "code": ""}]}
        store = MemoryStore({SCOPES_KEY: json.dumps([*LEGACY_SCOPES, broken])})

        scopes, _ = load_workspace_records(store)

        assert [scope.name for scope in scopes] == ["Geometry", "Plain"]
        stored = json.loads(store.data[SCOPES_KEY])
        assert [scope["id"] for scope in stored] == ["scope-1", "scope-2", "scope-3"]
        assert all("functions" not in scope for scope in stored)

    def test_migrate_store(self, tmp_path: Path) -> None:
        """Should migrate a store once."""
        store = JsonDirectoryStore(tmp_path)
        store.set(SCOPES_KEY, json.dumps(LEGACY_SCOPES))
        assert migrate_store(store)
        assert not migrate_store(store)
        assert len(load_modules(store)) == 2
