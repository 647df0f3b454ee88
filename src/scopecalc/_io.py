from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ._models import Scope

logger = logging.getLogger(__name__)


def _scope_to_dict(scope: Scope) -> dict[str, Any]:
    values = {name: value for name, value in scope.bindings().items() if value is not None}
    lines = {
        str(line.index + 1): line.value for line in scope.lines if line.error is None and line.value is not None
    }
    errors = {str(line.index + 1): line.error for line in scope.lines if line.error is not None}

    section: dict[str, Any] = {}
    if values:
        section["values"] = values
    if lines:
        section["lines"] = lines
    if errors:
        section["errors"] = errors
    return section


def results_to_dict(scopes: Iterable[Scope]) -> dict[str, Any]:
    """Convert evaluated scopes to a nested dictionary structure.

    This is a pure function. ``None`` values are left out because TOML has no
    null, and line numbers are 1-based strings.

    Args:
        scopes: Evaluated scopes.

    Returns:
        A nested dictionary with the structure:
        {
            "ScopeName": {
                "values": {"name": value, ...},
                "lines": {"1": value, ...},
                "errors": {"2": "Undefined: x", ...}
            }
        }

    """
    return {scope.name: _scope_to_dict(scope) for scope in scopes}


def export_to_toml(scopes: Iterable[Scope], output_path: Path | str) -> None:
    """Export the results of evaluated scopes to a TOML file.

    Args:
        scopes: Evaluated scopes.
        output_path: Path to the output TOML file.

    """
    toml_data = results_to_dict(scopes)

    output_path = Path(output_path)
    with output_path.open("wb") as f:
        tomli_w.dump(toml_data, f)

    logger.debug(f"Exported results to {output_path}")
