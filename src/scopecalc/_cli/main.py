import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from scopecalc._engine import evaluate_all
from scopecalc._expr import to_display_string
from scopecalc._graph import build_graph
from scopecalc._io import export_to_toml
from scopecalc._models import FunctionModule, Line, Scope
from scopecalc._storage import JsonDirectoryStore, migrate_store
from scopecalc._workspace import Workspace

from .config import DEFAULT_STORE_DIR, ConfigError, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Scopecalc CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _resolve_store_dir(store: Path | None) -> Path:
    """Pick the store directory: the option, then [tool.scopecalc].store, then the default."""
    if store is not None:
        return store
    try:
        config = get_config()
    except ConfigError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    return config.store or DEFAULT_STORE_DIR


def _resolve_output(output: Path | None) -> Path | None:
    if output is not None:
        return output
    try:
        return get_config().output
    except ConfigError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _format_value(line: Line) -> str:
    if line.error is not None:
        return f"[red]{escape(line.error)}[/red]"
    if line.is_empty:
        return ""
    if isinstance(line.value, str):
        return escape(f'"{line.value}"')
    return escape(to_display_string(line.value))


def _lines_table(lines: list[Line]) -> Table:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Line")
    table.add_column("Result")

    for line in lines:
        table.add_row(str(line.index + 1), escape(line.raw_expression), _format_value(line))

    return table


def _print_scope(scope: Scope) -> None:
    n_errors = sum(line.error is not None for line in scope.lines)
    subtitle = f"[red]{n_errors} error(s)[/red]" if n_errors else "[dim]no errors[/dim]"
    out_console.print(
        Panel(
            _lines_table(scope.lines),
            title=f"[bold]{escape(scope.name)}[/bold]",
            subtitle=subtitle,
            border_style="cyan",
        ),
    )


@app.command()
def calc(
    *,
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Directory of the JSON store (default: [tool.scopecalc].store or .scopecalc)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output TOML file"),
    ] = None,
    scope_name: Annotated[
        str | None,
        typer.Option("--scope", help="Only evaluate the scope with this name"),
    ] = None,
    check: Annotated[
        bool,
        typer.Option("--check", help="Exit non-zero if any line has an error"),
    ] = False,
) -> None:
    """Evaluate every scope of a store and show the results."""
    store_dir = _resolve_store_dir(store)
    output_path = _resolve_output(output)

    err_console.print()
    err_console.print(f"[cyan]Loading store from:[/cyan] {store_dir}")
    workspace = Workspace.load(JsonDirectoryStore(store_dir))
    err_console.print(
        f"[cyan]Scopes:[/cyan] {len(workspace.scopes)}  [cyan]Modules:[/cyan] {len(workspace.modules)}",
    )
    err_console.print()

    scopes = workspace.scopes
    if scope_name is not None:
        found = workspace.find_scope(scope_name)
        if found is None:
            err_console.print(f"[red]Error: Scope not found: {escape(scope_name)}[/red]")
            raise typer.Exit(code=1)
        scopes = [found]

    for scope in scopes:
        _print_scope(scope)

    if output_path is not None:
        err_console.print(f"[cyan]Exporting results to:[/cyan] {output_path}")
        export_to_toml(scopes, output_path)

    has_errors = any(line.error is not None for scope in scopes for line in scope.lines)

    err_console.print()
    if has_errors:
        err_console.print("[yellow]Some lines have errors[/yellow]")
    else:
        err_console.print("[green]✓ Calculation complete[/green]")
    err_console.print()

    if check and has_errors:
        raise typer.Exit(code=1)


@app.command(name="eval")
def eval_file(
    path: Annotated[
        Path,
        typer.Argument(help="Text file with one line per calculator line"),
    ],
    *,
    module_files: Annotated[
        list[Path] | None,
        typer.Option("-m", "--module", help="Module source file; the module is named after the file stem"),
    ] = None,
    check: Annotated[
        bool,
        typer.Option("--check", help="Exit non-zero if any line has an error"),
    ] = False,
) -> None:
    """Evaluate a plain text file without touching any store."""
    if not path.is_file():
        err_console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(code=1)

    modules: list[FunctionModule] = []
    for module_file in module_files or []:
        try:
            modules.append(
                FunctionModule(name=module_file.stem, source_code=module_file.read_text(encoding="utf-8")),
            )
        except OSError as e:
            err_console.print(f"[red]Error: Cannot read module file {module_file}: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from e
        except ValidationError as e:
            err_console.print(f"[red]Error: '{escape(module_file.stem)}' is not a valid module name[/red]")
            raise typer.Exit(code=1) from e
        logger.debug(f"Loaded module '{module_file.stem}' from {module_file}")

    texts = path.read_text(encoding="utf-8").splitlines()
    lines = evaluate_all([Line.from_text(text, index=idx) for idx, text in enumerate(texts)], modules)

    _print_scope(Scope(name=path.name, lines=lines))

    if check and any(line.error is not None for line in lines):
        raise typer.Exit(code=1)


@app.command()
def check(
    *,
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Directory of the JSON store (default: [tool.scopecalc].store or .scopecalc)"),
    ] = None,
) -> None:
    """Report circular references and module compile problems."""
    store_dir = _resolve_store_dir(store)

    err_console.print()
    err_console.print(f"[cyan]Loading store from:[/cyan] {store_dir}")
    workspace = Workspace.load(JsonDirectoryStore(store_dir))
    err_console.print()

    problems = 0

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Scope", style="bold")
    table.add_column("Lines", justify="right", style="yellow")
    table.add_column("Cycle")

    for scope in workspace.scopes:
        cycle = build_graph(scope.lines).detect_cycle()
        if cycle is None:
            status = "[green]✓ none[/green]"
        else:
            problems += 1
            ancestor, current = cycle
            status = f"[red]✗ line {current + 1} -> line {ancestor + 1}[/red]"
        table.add_row(escape(scope.name), str(len(scope.lines)), status)

    err_console.print(Panel(table, title="[bold]Scopes[/bold]", border_style="cyan"))

    for module in workspace.modules:
        for diagnostic in module.compile().diagnostics:
            problems += 1
            err_console.print(f"[yellow]@{escape(module.name)}:[/yellow] {escape(str(diagnostic))}")

    err_console.print()
    if problems:
        err_console.print(f"[red]✗ {problems} problem(s) found[/red]")
        err_console.print()
        raise typer.Exit(code=1)

    err_console.print("[green]✓ Store is valid[/green]")
    err_console.print()


@app.command()
def modules(
    *,
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Directory of the JSON store (default: [tool.scopecalc].store or .scopecalc)"),
    ] = None,
) -> None:
    """List function modules and their functions."""
    store_dir = _resolve_store_dir(store)
    workspace = Workspace.load(JsonDirectoryStore(store_dir))

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Module", style="bold")
    table.add_column("Color")
    table.add_column("Saved")
    table.add_column("Functions")

    for module in workspace.modules:
        compiled = module.compile()
        signatures = ", ".join(function.signature for function in compiled.functions.values())
        table.add_row(
            escape(f"@{module.name}"),
            module.color_tag.value,
            "yes" if module.is_saved else "[yellow]no[/yellow]",
            escape(signatures) or "[dim](none)[/dim]",
        )

    out_console.print(table)


@app.command()
def migrate(
    *,
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Directory of the JSON store (default: [tool.scopecalc].store or .scopecalc)"),
    ] = None,
) -> None:
    """Move functions embedded in scopes into global modules."""
    store_dir = _resolve_store_dir(store)

    err_console.print(f"[cyan]Migrating store:[/cyan] {store_dir}")
    if migrate_store(JsonDirectoryStore(store_dir)):
        err_console.print("[green]✓ Legacy functions moved to modules[/green]")
    else:
        err_console.print("[dim]Nothing to migrate[/dim]")


def main() -> None:
    app()
