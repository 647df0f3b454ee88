"""String enums shared by the data model and the engine."""

from enum import StrEnum
from typing import Self


class StrEnumWithDoc(StrEnum):
    """String enum whose members carry their own docstring."""

    def __new__(cls, value: str, doc: str = "") -> Self:
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.__doc__ = doc
        return obj


class ErrorKind(StrEnumWithDoc):
    """Category of a line-level error."""

    UNDEFINED_REFERENCE = "undefined_reference", "A dependency is neither an earlier binding nor a known module."
    CIRCULAR_REFERENCE = "circular_reference", "The line takes part in a cycle of bindings."
    RUNTIME_ERROR = "runtime_error", "The expression failed to parse or raised while being evaluated."


class ColorTag(StrEnumWithDoc):
    """Display color of a function module."""

    BLUE = "blue"
    GREEN = "green"
    PURPLE = "purple"
    ORANGE = "orange"
    PINK = "pink"

    @classmethod
    def for_position(cls, position: int) -> Self:
        """Pick the palette color for the n-th module."""
        palette = list(cls)
        return palette[position % len(palette)]
