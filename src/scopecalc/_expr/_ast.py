"""Syntax tree nodes of the expression language."""

from __future__ import annotations

from dataclasses import dataclass

type Value = int | float | str | bool | None


@dataclass(frozen=True, slots=True)
class Literal:
    value: Value


@dataclass(frozen=True, slots=True)
class Name:
    name: str


@dataclass(frozen=True, slots=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True, slots=True)
class Binary:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Logical:
    """Short-circuit ``&&`` / ``||``."""

    op: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Conditional:
    test: Node
    then: Node
    otherwise: Node


@dataclass(frozen=True, slots=True)
class ModuleCall:
    """``@module.function(args...)``."""

    module: str
    function: str
    args: tuple[Node, ...]


type Node = Literal | Name | Unary | Binary | Logical | Conditional | ModuleCall
