"""Notebook-style calculator with named scopes and user function modules."""

__all__ = [
    "HISTORY_LIMIT",
    "MAX_CALL_DEPTH",
    "MODULES_KEY",
    "SCOPES_KEY",
    "ColorTag",
    "CompileDiagnostic",
    "CompiledModule",
    "ErrorKind",
    "EvaluationError",
    "ExpressionSyntaxError",
    "FunctionModule",
    "JsonDirectoryStore",
    "KeyValueStore",
    "Line",
    "LineGraph",
    "MemoryStore",
    "ModuleFunction",
    "ParsedLine",
    "Scope",
    "ScopecalcError",
    "Workspace",
    "build_graph",
    "compile_module",
    "detect_cycle",
    "evaluate",
    "evaluate_all",
    "evaluate_scope",
    "export_to_toml",
    "extract_dependencies",
    "load_modules",
    "load_scopes",
    "load_workspace_records",
    "migrate_legacy_scopes",
    "parse_expression",
    "parse_line",
    "results_to_dict",
    "save_modules",
    "save_scopes",
]

from ._dependencies import extract_dependencies
from ._engine import evaluate_all, evaluate_scope
from ._enums import ColorTag, ErrorKind
from ._errors import EvaluationError, ExpressionSyntaxError, ScopecalcError
from ._expr import MAX_CALL_DEPTH, evaluate, parse_expression
from ._graph import LineGraph, build_graph, detect_cycle
from ._io import export_to_toml, results_to_dict
from ._line_parser import ParsedLine, parse_line
from ._models import FunctionModule, Line, Scope
from ._modules import CompileDiagnostic, CompiledModule, ModuleFunction, compile_module
from ._storage import (
    MODULES_KEY,
    SCOPES_KEY,
    JsonDirectoryStore,
    KeyValueStore,
    MemoryStore,
    load_modules,
    load_scopes,
    load_workspace_records,
    migrate_legacy_scopes,
    save_modules,
    save_scopes,
)
from ._workspace import HISTORY_LIMIT, Workspace
