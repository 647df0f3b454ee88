"""Core evaluation engine: turn lines plus function modules into results."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ._dependencies import extract_dependencies
from ._enums import ErrorKind
from ._errors import EvaluationError, ExpressionSyntaxError
from ._expr import evaluate, parse_expression
from ._graph import LineGraph, build_graph
from ._line_parser import parse_line

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from ._expr import Value
    from ._models import FunctionModule, Line, Scope
    from ._modules import CompiledModule

logger = logging.getLogger(__name__)

UNDEFINED_PREFIX = "Undefined: "
CIRCULAR_PREFIX = "Circular reference: "


def compile_namespaces(modules: Iterable[FunctionModule]) -> dict[str, CompiledModule]:
    """Compile every module once, keyed by module name.

    A module without any valid function is kept as an empty namespace.
    """
    namespaces: dict[str, CompiledModule] = {}
    for module in modules:
        if module.name in namespaces:
            logger.warning("Duplicate module name '%s'; the later module wins", module.name)
        namespaces[module.name] = module.compile()
    return namespaces


def _refresh(line: Line, index: int) -> Line:
    """Re-derive the binding and dependencies of a line from its text."""
    parsed = parse_line(line.raw_expression)
    depends_on = extract_dependencies(parsed.expression) if parsed.expression else ()
    return line.model_copy(
        update={
            "index": index,
            "bound_name": parsed.bound_name,
            "depends_on": depends_on,
        },
    )


def _missing_dependencies_error(
    line: Line,
    undefined: list[str],
    lines: Sequence[Line],
    graph: LineGraph,
) -> tuple[str, ErrorKind]:
    """Describe unresolved dependencies, naming a cycle when the line is on one.

    *lines* are the evaluated lines of the pass. A cycle is only named when
    every other line on it failed as well.
    """
    cycle = graph.cycle_through(line.index)
    # Only a cycle whose next binding is one of the missing names explains the error.
    next_name = lines[cycle[1]].bound_name if cycle is not None and len(cycle) > 1 else None
    if cycle is None or next_name not in undefined or any(lines[idx].error is None for idx in cycle[1:]):
        return UNDEFINED_PREFIX + ", ".join(undefined), ErrorKind.UNDEFINED_REFERENCE

    names = [lines[idx].bound_name or f"line {idx + 1}" for idx in cycle]
    message = CIRCULAR_PREFIX + " -> ".join([*names, names[0]])
    others = [name for name in undefined if name != next_name]
    if others:
        message += "; " + UNDEFINED_PREFIX + ", ".join(others)
    return message, ErrorKind.CIRCULAR_REFERENCE


def evaluate_all(lines: Sequence[Line], modules: Iterable[FunctionModule]) -> list[Line]:
    """Evaluate lines top to bottom against a set of function modules.

    This is a pure function that:
    1. Compiles every module into a namespace keyed by module name
    2. Re-derives each line's binding and dependencies from its text
    3. Walks the lines in order with a context of earlier bindings:
       - empty lines get no value and no error
       - lines with unresolved dependencies get an "Undefined: ..." error
       - other lines are evaluated; a successful binding line extends the context
    4. Returns new lines, same length and order, with value/error/depends_on set

    A later line can only see names bound by earlier lines. Nothing raises:
    every failure ends up as the error of the offending line, and a failing
    line contributes no binding.

    Args:
        lines: The lines of a scope, in document order.
        modules: All registered function modules.

    Returns:
        The evaluated lines.

    Example:
        >>> from scopecalc import Line
        >>> result = evaluate_all([Line.from_text("a = 2"), Line.from_text("a * 3")], [])
        >>> [line.value for line in result]
        [2, 6]

    """
    namespaces = compile_namespaces(modules)
    refreshed = [_refresh(line, idx) for idx, line in enumerate(lines)]
    graph = build_graph(refreshed)
    context: dict[str, Value] = {}
    results: list[Line] = []
    unresolved: dict[int, list[str]] = {}

    logger.debug("Evaluating %d line(s) with %d module(s)", len(refreshed), len(namespaces))

    for line in refreshed:
        expression = parse_line(line.raw_expression).expression
        if not expression:
            results.append(line.model_copy(update={"value": None, "error": None, "error_kind": None, "depends_on": ()}))
            continue

        undefined = [dep for dep in line.depends_on if dep not in context and dep not in namespaces]
        if undefined:
            unresolved[line.index] = undefined
            message = UNDEFINED_PREFIX + ", ".join(undefined)
            results.append(
                line.model_copy(update={"value": None, "error": message, "error_kind": ErrorKind.UNDEFINED_REFERENCE}),
            )
            continue

        try:
            value = evaluate(parse_expression(expression), context, namespaces)
        except (ExpressionSyntaxError, EvaluationError) as e:
            logger.debug("Line %d failed: %s", line.index + 1, e)
            results.append(line.model_copy(update={"value": None, "error": str(e), "error_kind": ErrorKind.RUNTIME_ERROR}))
            continue

        logger.debug("Line %d = %r", line.index + 1, value)
        if line.bound_name is not None:
            context[line.bound_name] = value
        results.append(line.model_copy(update={"value": value, "error": None, "error_kind": None}))

    # Cycles are named once every line has a result.
    for index, undefined in unresolved.items():
        message, kind = _missing_dependencies_error(results[index], undefined, results, graph)
        logger.debug("Line %d: %s", index + 1, message)
        results[index] = results[index].model_copy(update={"error": message, "error_kind": kind})

    return results


def evaluate_scope(scope: Scope, modules: Iterable[FunctionModule]) -> Scope:
    """Return a copy of *scope* with freshly evaluated lines."""
    return scope.model_copy(update={"lines": evaluate_all(scope.lines, modules)})
