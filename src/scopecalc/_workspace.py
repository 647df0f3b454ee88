"""Workspace: the scopes and modules a user works on, plus their history."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._engine import evaluate_all
from ._enums import ColorTag
from ._line_parser import is_valid_identifier
from ._models import FunctionModule, Line, Scope
from ._modules import template_source
from ._storage import load_workspace_records, save_modules, save_scopes

if TYPE_CHECKING:
    from ._storage import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


def _reindexed(lines: list[Line]) -> list[Line]:
    if not lines:
        return [Line()]
    return [line if line.index == idx else line.model_copy(update={"index": idx}) for idx, line in enumerate(lines)]


@dataclass(slots=True)
class Workspace:
    """Owns scopes and the global module registry.

    Every line mutation re-evaluates the owning scope, and every module
    mutation re-evaluates all scopes, since any line may call any module.
    When a store is attached the affected records are saved after each
    evaluation pass.
    """

    scopes: list[Scope] = field(default_factory=list)
    modules: list[FunctionModule] = field(default_factory=list)
    store: KeyValueStore | None = None
    _history: dict[str, deque[list[Line]]] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, store: KeyValueStore) -> Workspace:
        """Load (and migrate) the records of *store* and evaluate every scope."""
        scopes, modules = load_workspace_records(store)
        workspace = cls(scopes=scopes, modules=modules, store=store)
        for scope in workspace.scopes:
            scope.lines = evaluate_all(scope.lines, workspace.modules)
        logger.debug("Loaded workspace with %d scope(s), %d module(s)", len(scopes), len(modules))
        return workspace

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_scope(self, scope_id: str) -> Scope:
        for scope in self.scopes:
            if scope.id == scope_id:
                return scope
        msg = f"Scope '{scope_id}' not found."
        raise KeyError(msg)

    def find_scope(self, name: str) -> Scope | None:
        """Find a scope by name, ignoring case."""
        folded = name.strip().casefold()
        return next((scope for scope in self.scopes if scope.name.casefold() == folded), None)

    def get_module(self, module_id: str) -> FunctionModule:
        for module in self.modules:
            if module.id == module_id:
                return module
        msg = f"Module '{module_id}' not found."
        raise KeyError(msg)

    # -------------------------------------------------------------------------
    # Scopes
    # -------------------------------------------------------------------------

    def _check_scope_name(self, name: str, exclude_id: str | None = None) -> str:
        name = name.strip()
        if not name:
            msg = "Scope name must not be empty."
            raise ValueError(msg)
        existing = self.find_scope(name)
        if existing is not None and existing.id != exclude_id:
            msg = f"Scope with name '{name}' already exists."
            raise ValueError(msg)
        return name

    def create_scope(self, name: str) -> Scope:
        """Create a scope holding one blank line."""
        scope = Scope(name=self._check_scope_name(name))
        self.scopes.append(scope)
        self._save_scopes()
        logger.info("Created scope '%s'", scope.name)
        return scope

    def rename_scope(self, scope_id: str, name: str) -> Scope:
        scope = self.get_scope(scope_id)
        scope.name = self._check_scope_name(name, exclude_id=scope_id)
        scope.touch()
        self._save_scopes()
        return scope

    def delete_scope(self, scope_id: str) -> None:
        scope = self.get_scope(scope_id)
        self.scopes.remove(scope)
        self._history.pop(scope_id, None)
        self._save_scopes()
        logger.info("Deleted scope '%s'", scope.name)

    def reorder_scopes(self, from_index: int, to_index: int) -> None:
        """Move the scope at *from_index* to *to_index*."""
        for idx in (from_index, to_index):
            if not 0 <= idx < len(self.scopes):
                msg = f"Scope position {idx} is out of range."
                raise IndexError(msg)
        scope = self.scopes.pop(from_index)
        self.scopes.insert(to_index, scope)
        self._save_scopes()

    # -------------------------------------------------------------------------
    # Lines
    # -------------------------------------------------------------------------

    def _remember(self, scope: Scope) -> None:
        history = self._history.setdefault(scope.id, deque(maxlen=HISTORY_LIMIT))
        history.append(list(scope.lines))

    @staticmethod
    def _check_line_index(scope: Scope, index: int) -> None:
        if not 0 <= index < len(scope.lines):
            msg = f"Line {index} is out of range for scope '{scope.name}'."
            raise IndexError(msg)

    def add_line(self, scope_id: str, text: str = "", index: int | None = None) -> Line:
        """Insert a line (at the end by default) and return it evaluated."""
        scope = self.get_scope(scope_id)
        position = len(scope.lines) if index is None else max(0, min(index, len(scope.lines)))
        self._remember(scope)
        lines = list(scope.lines)
        lines.insert(position, Line.from_text(text))
        self._set_lines(scope, lines)
        return scope.lines[position]

    def update_line(self, scope_id: str, index: int, text: str) -> Line:
        """Replace the text of a line and return it evaluated."""
        scope = self.get_scope(scope_id)
        self._check_line_index(scope, index)
        self._remember(scope)
        lines = list(scope.lines)
        lines[index] = Line.from_text(text, index=index)
        self._set_lines(scope, lines)
        return scope.lines[index]

    def delete_line(self, scope_id: str, index: int) -> None:
        """Delete a line; a scope left without lines gets one blank line."""
        scope = self.get_scope(scope_id)
        self._check_line_index(scope, index)
        self._remember(scope)
        lines = list(scope.lines)
        del lines[index]
        self._set_lines(scope, lines)

    def undo(self, scope_id: str) -> bool:
        """Restore the lines before the last line mutation.

        Returns:
            False if there was nothing to undo.

        """
        scope = self.get_scope(scope_id)
        history = self._history.get(scope_id)
        if not history:
            return False
        self._set_lines(scope, history.pop())
        return True

    def _set_lines(self, scope: Scope, lines: list[Line]) -> None:
        scope.lines = evaluate_all(_reindexed(lines), self.modules)
        scope.touch()
        self._save_scopes()

    # -------------------------------------------------------------------------
    # Modules
    # -------------------------------------------------------------------------

    def _check_module_name(self, name: str, exclude_id: str | None = None) -> str:
        name = name.strip()
        if not is_valid_identifier(name):
            msg = f"Module name '{name}' is not a valid identifier."
            raise ValueError(msg)
        if any(module.name == name and module.id != exclude_id for module in self.modules):
            msg = f"Module with name '{name}' already exists."
            raise ValueError(msg)
        return name

    def add_module(self, name: str) -> FunctionModule:
        """Register a module with starter source and the next palette color."""
        name = self._check_module_name(name)
        module = FunctionModule(
            name=name,
            source_code=template_source(name),
            color_tag=ColorTag.for_position(len(self.modules)),
        )
        self.modules.append(module)
        self._modules_changed()
        logger.info("Added module '%s'", name)
        return module

    def _replace_module(self, module_id: str, **update: object) -> FunctionModule:
        module = self.get_module(module_id)
        updated = module.model_copy(update=update)
        self.modules[self.modules.index(module)] = updated
        return updated

    def update_module(self, module_id: str, source_code: str) -> FunctionModule:
        """Replace the source of a module; it becomes unsaved."""
        module = self._replace_module(module_id, source_code=source_code, is_saved=False)
        self._modules_changed()
        return module

    def save_module(self, module_id: str) -> FunctionModule:
        module = self._replace_module(module_id, is_saved=True)
        self._save_modules()
        return module

    def rename_module(self, module_id: str, name: str) -> FunctionModule:
        name = self._check_module_name(name, exclude_id=module_id)
        module = self._replace_module(module_id, name=name, is_saved=False)
        self._modules_changed()
        return module

    def delete_module(self, module_id: str) -> None:
        module = self.get_module(module_id)
        self.modules.remove(module)
        self._modules_changed()
        logger.info("Deleted module '%s'", module.name)

    def _modules_changed(self) -> None:
        self._save_modules()
        self.recompute_all()

    # -------------------------------------------------------------------------
    # Evaluation & persistence
    # -------------------------------------------------------------------------

    def recompute_scope(self, scope_id: str) -> Scope:
        scope = self.get_scope(scope_id)
        self._set_lines(scope, list(scope.lines))
        return scope

    def recompute_all(self) -> None:
        """Re-evaluate every scope against the current modules."""
        for scope in self.scopes:
            scope.lines = evaluate_all(scope.lines, self.modules)
            scope.touch()
        self._save_scopes()

    def _save_scopes(self) -> None:
        if self.store is not None:
            save_scopes(self.store, self.scopes)

    def _save_modules(self) -> None:
        if self.store is not None:
            save_modules(self.store, self.modules)
