"""Extract the names an expression needs before it can be evaluated."""

import re
from dataclasses import dataclass

RESERVED_KEYWORDS = frozenset(
    {
        "if",
        "else",
        "for",
        "while",
        "return",
        "true",
        "false",
        "null",
        "undefined",
        # binding keywords
        "function",
        "const",
        "let",
        "var",
    },
)

# `@module.function`; only the module part is a dependency.
_MODULE_CALL_RE = re.compile(r"@\s*([A-Za-z_][A-Za-z0-9_]*)\s*\.\s*[A-Za-z_][A-Za-z0-9_]*")
_STRING_RE = re.compile(r"\"(?:[^\"\\]|\\.)*\"?|'(?:[^'\\]|\\.)*'?")
_IDENTIFIER_RE = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*\b")


@dataclass(frozen=True, slots=True)
class References:
    """Names an expression refers to, split by how they are used."""

    modules: tuple[str, ...]
    names: tuple[str, ...]


def _strip_strings(expression: str) -> str:
    """Remove string literals so words inside quotes are not taken as names."""
    return _STRING_RE.sub(" ", expression)


def extract_references(expression: str) -> References:
    """Extract module names (from ``@module.function``) and bare identifiers.

    Both tuples keep first appearance order and contain no duplicates.
    """
    clean = _strip_strings(expression)
    modules = [m.group(1) for m in _MODULE_CALL_RE.finditer(clean)]
    without_calls = _MODULE_CALL_RE.sub(" ", clean)
    names = [token for token in _IDENTIFIER_RE.findall(without_calls) if token not in RESERVED_KEYWORDS]
    return References(modules=tuple(dict.fromkeys(modules)), names=tuple(dict.fromkeys(names)))


def extract_dependencies(expression: str) -> tuple[str, ...]:
    """Extract the variable and module names an expression depends on.

    Module calls contribute their module name only; the called function name
    is never a dependency. The result has set semantics but keeps first
    appearance order (module names first) so messages built from it are
    stable.

    Examples:
        >>> extract_dependencies("@geo.area(w, h) * scale")
        ('geo', 'w', 'h', 'scale')
        >>> extract_dependencies("1e3 + 2")
        ()

    """
    references = extract_references(expression)
    return tuple(dict.fromkeys([*references.modules, *references.names]))
