"""Compile function-module source text into callable namespaces.

A module source holds any number of definitions of the form::

    function name(a, b) {
      return a + b;
    }

Compilation is best effort: a definition that cannot be compiled is left out
of the namespace and reported as a diagnostic, so one half-typed function
does not break the others while the user is still editing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._errors import ExpressionSyntaxError
from ._expr import parse_function_body
from ._line_parser import is_valid_identifier

if TYPE_CHECKING:
    from ._expr import Node

logger = logging.getLogger(__name__)

DEFAULT_MODULE_TEMPLATE = """\
// Define your functions here
// They will be accessible as @{name}.functionName()

function min(a, b) {{
  return a < b ? a : b;
}}

function max(a, b) {{
  return a > b ? a : b;
}}
"""

_HEADER_RE = re.compile(r"\bfunction\s+([A-Za-z_][A-Za-z0-9_]*)\s*\(([^)]*)\)\s*\{")
_COMMENT_RE = re.compile(
    r"""("(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')|//[^\n]*|/\*.*?\*/""",
    re.DOTALL,
)


@dataclass(frozen=True, slots=True)
class ModuleFunction:
    """A compiled user function."""

    name: str
    parameters: tuple[str, ...]
    body_source: str
    body: Node = field(repr=False, compare=False)

    @property
    def signature(self) -> str:
        return f"{self.name}({', '.join(self.parameters)})"


@dataclass(frozen=True, slots=True)
class CompileDiagnostic:
    """Why a definition was left out of its module's namespace."""

    function: str | None
    message: str
    offset: int

    def __str__(self) -> str:
        target = f"function '{self.function}'" if self.function else "definition"
        return f"{target} at offset {self.offset}: {self.message}"


@dataclass(frozen=True, slots=True)
class CompiledModule:
    """The namespace produced from one module's source."""

    name: str
    functions: dict[str, ModuleFunction] = field(default_factory=dict)
    diagnostics: tuple[CompileDiagnostic, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.functions


def template_source(module_name: str) -> str:
    """Starter source for a newly created module."""
    return DEFAULT_MODULE_TEMPLATE.format(name=module_name)


def _strip_comments(source: str) -> str:
    """Blank out comments while keeping offsets and string literals intact."""

    def _replace(match: re.Match[str]) -> str:
        if match.group(1) is not None:
            return match.group(0)
        return re.sub(r"[^\n]", " ", match.group(0))

    return _COMMENT_RE.sub(_replace, source)


def _find_closing_brace(source: str, open_idx: int) -> int:
    """Index of the ``}`` matching the ``{`` at *source[open_idx]*, or -1."""
    depth = 0
    quote: str | None = None
    i = open_idx
    while i < len(source):
        ch = source[i]
        if quote is not None:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _parse_parameters(param_list: str) -> tuple[str, ...]:
    params = [p.strip() for p in param_list.split(",")]
    if params == [""]:
        return ()
    for param in params:
        if not is_valid_identifier(param):
            msg = f"Invalid parameter name '{param}'"
            raise ValueError(msg)
    if len(set(params)) != len(params):
        msg = "Duplicate parameter name"
        raise ValueError(msg)
    return tuple(params)


def compile_module(source: str, name: str = "") -> CompiledModule:
    """Compile module source into a namespace of functions.

    Every ``function`` header is tried on its own, wherever it appears, so
    the result does not depend on definition order or on nesting. Malformed
    definitions are skipped and described in ``diagnostics``. When a name is
    defined twice the later definition wins.

    Args:
        source: The module source text.
        name: The module name, used for logging and kept on the result.

    Returns:
        The compiled module. It is never an error for it to be empty.

    """
    clean = _strip_comments(source)
    functions: dict[str, ModuleFunction] = {}
    diagnostics: list[CompileDiagnostic] = []

    def _skip(function_name: str | None, message: str, offset: int) -> None:
        diagnostic = CompileDiagnostic(function=function_name, message=message, offset=offset)
        diagnostics.append(diagnostic)
        logger.debug("Module '%s': skipped %s", name, diagnostic)

    for header in _HEADER_RE.finditer(clean):
        function_name = header.group(1)
        open_idx = header.end() - 1
        close_idx = _find_closing_brace(clean, open_idx)
        if close_idx < 0:
            _skip(function_name, "missing closing '}'", header.start())
            continue

        try:
            parameters = _parse_parameters(header.group(2))
        except ValueError as e:
            _skip(function_name, str(e), header.start())
            continue

        body_source = clean[open_idx + 1 : close_idx].strip()
        try:
            body = parse_function_body(body_source)
        except ExpressionSyntaxError as e:
            _skip(function_name, str(e), header.start())
            continue

        functions[function_name] = ModuleFunction(
            name=function_name,
            parameters=parameters,
            body_source=body_source,
            body=body,
        )

    logger.debug("Compiled module '%s': %d function(s), %d skipped", name, len(functions), len(diagnostics))
    return CompiledModule(name=name, functions=functions, diagnostics=tuple(diagnostics))
