"""Split a line of text into an optional binding name and its expression."""

import re
from dataclasses import dataclass

IDENTIFIER_PATTERN = r"[A-Za-z_][A-Za-z0-9_]*"

_IDENTIFIER_RE = re.compile(rf"^{IDENTIFIER_PATTERN}$")
# `(?!=)` keeps `a == 1` a comparison instead of binding `a` to `= 1`.
_BINDING_RE = re.compile(rf"^({IDENTIFIER_PATTERN})\s*=(?!=)\s*(.+)$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class ParsedLine:
    """A line split into its binding name (if any) and expression text."""

    bound_name: str | None
    expression: str

    @property
    def is_binding(self) -> bool:
        return self.bound_name is not None

    @property
    def is_empty(self) -> bool:
        return not self.expression


def parse_line(text: str) -> ParsedLine:
    """Parse the text of a line.

    Any text is accepted; whether the expression is meaningful is decided
    when it is evaluated.

    Examples:
        >>> parse_line("total = a + b")
        ParsedLine(bound_name='total', expression='a + b')
        >>> parse_line("  a + b  ")
        ParsedLine(bound_name=None, expression='a + b')

    """
    trimmed = text.strip()
    match = _BINDING_RE.match(trimmed)
    if match is None:
        return ParsedLine(bound_name=None, expression=trimmed)
    return ParsedLine(bound_name=match.group(1), expression=match.group(2).strip())


def is_valid_identifier(name: str) -> bool:
    """Check whether *name* can be used as a binding or module name."""
    return _IDENTIFIER_RE.match(name) is not None
