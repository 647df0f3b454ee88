"""Dependency graph between the lines of a scope."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from scopecalc._dependencies import extract_references
from scopecalc._line_parser import parse_line

from ._algorithms import detect_cycle, find_cycle_through


def _binding_in_effect(binders: list[int], index: int) -> int | None:
    """Pick the binding line a read at *index* refers to, never *index* itself."""
    above = [idx for idx in binders if idx < index]
    if above:
        return above[-1]
    return next((idx for idx in binders if idx > index), None)


class GraphLine(Protocol):
    """What the graph needs to know about a line."""

    @property
    def raw_expression(self) -> str: ...


@dataclass(frozen=True, slots=True)
class LineGraph:
    """Edges from each line to the lines whose bindings it reads.

    Nodes are line indexes. An edge ``i -> j`` means line ``i`` depends on the
    name bound by line ``j``. Module names never produce edges; they resolve
    against the module registry instead of other lines.

    Attributes:
        _successors: Mapping from line index to the indexes it depends on,
            in the order the dependencies were found.

    """

    _successors: dict[int, tuple[int, ...]] = field(default_factory=dict)

    @classmethod
    def from_lines(cls, lines: Sequence[GraphLine]) -> LineGraph:
        """Build the graph from the text of the lines.

        A name resolves to the binding in effect for the reading line: the
        latest binding above it, or else the first binding below it. Only bare
        identifiers produce edges; `@m.f(...)` resolves `m` as a module.

        Example:
            >>> from scopecalc import Line
            >>> lines = [Line.from_text("a = 1"), Line.from_text("b = a", index=1)]
            >>> LineGraph.from_lines(lines).successors(1)
            (0,)

        """
        parsed = [parse_line(line.raw_expression) for line in lines]
        binders: dict[str, list[int]] = {}
        for idx, line in enumerate(parsed):
            if line.bound_name:
                binders.setdefault(line.bound_name, []).append(idx)

        successors: dict[int, tuple[int, ...]] = {}
        for idx, line in enumerate(parsed):
            names = extract_references(line.expression).names
            targets = (_binding_in_effect(binders.get(name, []), idx) for name in names)
            successors[idx] = tuple(dict.fromkeys(t for t in targets if t is not None))

        return cls(_successors=successors)

    @property
    def adjacency(self) -> dict[int, tuple[int, ...]]:
        """A copy of the adjacency mapping."""
        return dict(self._successors)

    def successors(self, index: int) -> tuple[int, ...]:
        """Indexes of the lines that line *index* depends on."""
        return self._successors.get(index, ())

    def detect_cycle(self) -> tuple[int, int] | None:
        """Return one back edge ``(ancestor, current)`` or ``None``."""
        return detect_cycle(self._successors)

    def cycle_through(self, index: int) -> list[int] | None:
        """Return the lines of a cycle that passes through line *index*."""
        return find_cycle_through(self._successors, index)

    def __len__(self) -> int:
        """Return the number of lines in the graph."""
        return len(self._successors)

    def __contains__(self, index: int) -> bool:
        """Check if a line index is in the graph."""
        return index in self._successors


def build_graph(lines: Sequence[GraphLine]) -> LineGraph:
    """Build the dependency graph of a list of lines."""
    return LineGraph.from_lines(lines)
