"""Graph module providing line dependency analysis.

This module contains:
- LineGraph: An immutable graph of which line reads which other line's binding
- build_graph: Build a LineGraph from a list of lines
- detect_cycle / find_cycle_through: Cycle detection algorithms
"""

from ._algorithms import detect_cycle, find_cycle_through
from ._line_graph import LineGraph, build_graph

__all__ = ["LineGraph", "build_graph", "detect_cycle", "find_cycle_through"]
