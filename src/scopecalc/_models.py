"""Data model of scopes, lines and function modules.

The models double as the persisted record layout. Field names are
snake_case in Python and camelCase on disk; the legacy key names of the
previous schema (``lineIndex``, ``name``, ``expression``, ``variables``,
``code``) are still accepted when reading.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ._dependencies import extract_dependencies
from ._enums import ColorTag, ErrorKind
from ._line_parser import is_valid_identifier, parse_line
from ._modules import CompiledModule, compile_module

logger = logging.getLogger(__name__)

type LineValue = bool | int | float | str | None


def new_id(prefix: str) -> str:
    """Generate an opaque record id."""
    return f"{prefix}-{uuid.uuid4().hex}"


def utc_now() -> datetime:
    return datetime.now(UTC)


class Line(BaseModel):
    """One line of a scope: an optional binding plus its last result."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    index: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("index", "lineIndex"),
    )
    bound_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("boundName", "name"),
        serialization_alias="boundName",
    )
    raw_expression: str = Field(
        default="",
        validation_alias=AliasChoices("rawExpression", "expression"),
        serialization_alias="rawExpression",
    )
    # Cache only; always re-derived from raw_expression before use.
    depends_on: tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("dependsOn"),
        serialization_alias="dependsOn",
    )
    value: LineValue = None
    error: str | None = None
    error_kind: ErrorKind | None = Field(
        default=None,
        validation_alias=AliasChoices("errorKind"),
        serialization_alias="errorKind",
    )

    @field_validator("value", mode="before")
    @classmethod
    def _drop_non_scalar_value(cls, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        logger.debug("Dropping non-scalar cached value %r", value)
        return None

    @field_validator("error_kind", mode="before")
    @classmethod
    def _drop_unknown_error_kind(cls, value: Any) -> Any:
        if value is None or value in ErrorKind._value2member_map_:
            return value
        return None

    @classmethod
    def from_text(cls, text: str, index: int = 0) -> Line:
        """Create an unevaluated line from its text."""
        parsed = parse_line(text)
        return cls(
            index=index,
            bound_name=parsed.bound_name,
            raw_expression=text.strip(),
            depends_on=extract_dependencies(parsed.expression),
        )

    @property
    def is_empty(self) -> bool:
        return not self.raw_expression.strip()


def _blank_lines() -> list[Line]:
    return [Line()]


class Scope(BaseModel):
    """A named, ordered collection of lines. Always holds at least one line."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: new_id("scope"))
    name: str
    lines: list[Line] = Field(
        default_factory=_blank_lines,
        validation_alias=AliasChoices("lines", "variables"),
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("updatedAt", "updated_at"),
        serialization_alias="updatedAt",
    )

    @field_validator("lines")
    @classmethod
    def _reindex_lines(cls, lines: list[Line]) -> list[Line]:
        if not lines:
            return _blank_lines()
        return [line if line.index == idx else line.model_copy(update={"index": idx}) for idx, line in enumerate(lines)]

    def touch(self) -> None:
        """Record a modification."""
        self.updated_at = utc_now()

    def bindings(self) -> dict[str, LineValue]:
        """Bound names and their values, for lines without errors."""
        return {
            line.bound_name: line.value
            for line in self.lines
            if line.bound_name is not None and line.error is None and not line.is_empty
        }


class FunctionModule(BaseModel):
    """A globally registered, named group of user functions."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: new_id("module"))
    name: str
    source_code: str = Field(
        default="",
        validation_alias=AliasChoices("sourceCode", "code"),
        serialization_alias="sourceCode",
    )
    is_saved: bool = Field(
        default=False,
        validation_alias=AliasChoices("isSaved"),
        serialization_alias="isSaved",
    )
    color_tag: ColorTag = Field(
        default=ColorTag.BLUE,
        validation_alias=AliasChoices("colorTag"),
        serialization_alias="colorTag",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )

    @field_validator("name")
    @classmethod
    def _check_name(cls, name: str) -> str:
        if not is_valid_identifier(name):
            msg = f"Module name '{name}' is not a valid identifier"
            raise ValueError(msg)
        return name

    @model_validator(mode="before")
    @classmethod
    def _default_color(cls, data: Any) -> Any:
        if isinstance(data, dict):
            color = data.get("colorTag", data.get("color_tag"))
            if color is not None and color not in ColorTag._value2member_map_:
                data = {k: v for k, v in data.items() if k not in ("colorTag", "color_tag")}
        return data

    def compile(self) -> CompiledModule:
        """Compile the source into a fresh namespace."""
        return compile_module(self.source_code, name=self.name)
