"""Tree-walking evaluator for the expression language.

Only the nodes produced by the parser can be evaluated, so no user text is
ever executed as Python code.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Protocol

from scopecalc._errors import EvaluationError

from ._ast import Binary, Conditional, Literal, Logical, ModuleCall, Name, Node, Unary, Value

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = logging.getLogger(__name__)

MAX_CALL_DEPTH = 100
# Larger integer exponents are computed in floating point so they overflow instead of hanging.
_MAX_INT_EXPONENT = 1024
# Floats beyond this lose integer precision, so they stay floats.
_MAX_SAFE_INTEGER = 2**53


class Callable(Protocol):
    """A user function as the evaluator sees it."""

    @property
    def name(self) -> str: ...

    @property
    def parameters(self) -> tuple[str, ...]: ...

    @property
    def body(self) -> Node: ...


class Namespace(Protocol):
    """A compiled module as the evaluator sees it."""

    @property
    def functions(self) -> Mapping[str, Callable]: ...


def _is_number(value: Value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_name(value: Value) -> str:
    match value:
        case None:
            return "null"
        case bool():
            return "boolean"
        case int() | float():
            return "number"
        case str():
            return "string"
        case _:
            return type(value).__name__


def normalize_number(value: float) -> int | float:
    """Collapse integral floats to ints (``6 / 2`` is ``3``).

    Ints beyond ``2 ** 53`` become floats, so numbers stay within the float
    range and oversized results surface as ``OverflowError``.
    """
    if isinstance(value, int) and abs(value) > _MAX_SAFE_INTEGER:
        return float(value)
    if isinstance(value, float) and value.is_integer() and abs(value) <= _MAX_SAFE_INTEGER:
        return int(value)
    return value


def is_truthy(value: Value) -> bool:
    """Truthiness: ``0``, ``""``, ``null``, ``false`` and NaN are false."""
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def to_display_string(value: Value) -> str:
    """Render a value the way string concatenation shows it."""
    match value:
        case None:
            return "null"
        case bool():
            return "true" if value else "false"
        case float() if math.isnan(value):
            return "NaN"
        case float() if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        case float():
            return str(normalize_number(value))
        case _:
            return str(value)


def _strict_equal(left: Value, right: Value) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _arithmetic(op: str, left: Value, right: Value) -> Value:
    if op == "+" and (isinstance(left, str) or isinstance(right, str)):
        return to_display_string(left) + to_display_string(right)

    if not (_is_number(left) and _is_number(right)):
        msg = f"Unsupported operand types for {op}: {_type_name(left)} and {_type_name(right)}"
        raise EvaluationError(msg)

    try:
        match op:
            case "+":
                result = left + right
            case "-":
                result = left - right
            case "*":
                result = left * right
            case "/":
                if right == 0:
                    msg = "Division by zero"
                    raise EvaluationError(msg)
                result = left / right
            case "%":
                if right == 0:
                    msg = "Division by zero"
                    raise EvaluationError(msg)
                # Remainder keeps the sign of the dividend.
                if isinstance(left, float) or isinstance(right, float):
                    result = math.fmod(left, right)
                else:
                    remainder = abs(left) % abs(right)
                    result = -remainder if left < 0 else remainder
            case "**":
                if left == 0 and right < 0:
                    msg = "Division by zero"
                    raise EvaluationError(msg)
                if isinstance(left, int) and isinstance(right, int) and right > _MAX_INT_EXPONENT:
                    result = float(left) ** right
                else:
                    result = left**right
                if isinstance(result, complex):
                    msg = "Result is not a real number"
                    raise EvaluationError(msg)
            case _:
                msg = f"Unknown operator '{op}'"
                raise EvaluationError(msg)
        result = normalize_number(result)
        if isinstance(result, float) and math.isinf(result) and math.isfinite(left) and math.isfinite(right):
            raise OverflowError
    except OverflowError as e:
        msg = f"Numeric overflow in {op}"
        raise EvaluationError(msg) from e

    return result


def _compare(op: str, left: Value, right: Value) -> bool:
    if op in ("==", "==="):
        return _strict_equal(left, right)
    if op in ("!=", "!=="):
        return not _strict_equal(left, right)

    comparable = (_is_number(left) and _is_number(right)) or (isinstance(left, str) and isinstance(right, str))
    if not comparable:
        msg = f"Cannot compare {_type_name(left)} with {_type_name(right)}"
        raise EvaluationError(msg)

    match op:
        case "<":
            return left < right
        case "<=":
            return left <= right
        case ">":
            return left > right
        case ">=":
            return left >= right
    msg = f"Unknown operator '{op}'"
    raise EvaluationError(msg)


class Evaluator:
    """Evaluates syntax trees against a set of names and module namespaces.

    Args:
        names: Values visible as bare identifiers.
        modules: Compiled module namespaces keyed by module name.
        depth: Current function call depth.

    """

    def __init__(
        self,
        names: Mapping[str, Value],
        modules: Mapping[str, Namespace],
        depth: int = 0,
    ) -> None:
        self._names = names
        self._modules = modules
        self._depth = depth

    def evaluate(self, node: Node) -> Value:  # noqa: C901
        match node:
            case Literal(value):
                return value
            case Name(name):
                return self._lookup(name)
            case Unary(op, operand):
                return self._unary(op, self.evaluate(operand))
            case Logical("&&", left, right):
                value = self.evaluate(left)
                return self.evaluate(right) if is_truthy(value) else value
            case Logical("||", left, right):
                value = self.evaluate(left)
                return value if is_truthy(value) else self.evaluate(right)
            case Binary(op, left, right) if op in ("+", "-", "*", "/", "%", "**"):
                return _arithmetic(op, self.evaluate(left), self.evaluate(right))
            case Binary(op, left, right):
                return _compare(op, self.evaluate(left), self.evaluate(right))
            case Conditional(test, then, otherwise):
                return self.evaluate(then) if is_truthy(self.evaluate(test)) else self.evaluate(otherwise)
            case ModuleCall(module, function, args):
                return self._call(module, function, [self.evaluate(arg) for arg in args])
            case _:
                msg = f"Cannot evaluate node {node!r}"
                raise EvaluationError(msg)

    def _lookup(self, name: str) -> Value:
        if name in self._names:
            return self._names[name]
        if name in self._modules:
            msg = f"'{name}' is a module; call one of its functions with @{name}.function(...)"
            raise EvaluationError(msg)
        msg = f"'{name}' is not defined"
        raise EvaluationError(msg)

    @staticmethod
    def _unary(op: str, value: Value) -> Value:
        if op == "!":
            return not is_truthy(value)
        if not _is_number(value):
            msg = f"Unsupported operand type for unary {op}: {_type_name(value)}"
            raise EvaluationError(msg)
        return -value if op == "-" else value

    def _call(self, module_name: str, function_name: str, args: Sequence[Value]) -> Value:
        namespace = self._modules.get(module_name)
        if namespace is None:
            msg = f"Unknown module '{module_name}'"
            raise EvaluationError(msg)
        function = namespace.functions.get(function_name)
        if function is None:
            msg = f"{module_name}.{function_name} is not a function"
            raise EvaluationError(msg)
        if len(args) != len(function.parameters):
            msg = (
                f"{module_name}.{function_name}() expects {len(function.parameters)} "
                f"argument(s), got {len(args)}"
            )
            raise EvaluationError(msg)
        if self._depth >= MAX_CALL_DEPTH:
            msg = f"Maximum call depth of {MAX_CALL_DEPTH} exceeded in {module_name}.{function_name}()"
            raise EvaluationError(msg)

        logger.debug("Calling %s.%s%r", module_name, function_name, tuple(args))
        local_names = dict(zip(function.parameters, args, strict=True))
        return Evaluator(local_names, self._modules, self._depth + 1).evaluate(function.body)


def evaluate(
    node: Node,
    names: Mapping[str, Value] | None = None,
    modules: Mapping[str, Namespace] | None = None,
) -> Value:
    """Evaluate a syntax tree.

    Raises:
        EvaluationError: On any runtime failure.

    """
    try:
        return Evaluator(names or {}, modules or {}).evaluate(node)
    except RecursionError:
        msg = "Maximum recursion depth exceeded"
        raise EvaluationError(msg) from None
