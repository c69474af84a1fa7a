from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from adornpy.cache.artifacts import read_manifest, read_openapi
from adornpy.cache.staleness import is_stale
from adornpy.config import AdornSettings, load_settings
from adornpy.errors import ArtifactLoadError, ManifestBuildError
from adornpy.orchestrator.pipeline import run_build

app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()
err_console = Console(stderr=True)


@app.callback()
def _setup(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def _project(project: str) -> Path:
    root = Path(project).expanduser().resolve()
    if not root.exists():
        raise typer.BadParameter(f"Project path does not exist: {root}")
    if not root.is_dir():
        raise typer.BadParameter(f"Project path is not a directory: {root}")
    return root


def _settings(root: Path, out_dir: Optional[str], config: Optional[str], **extra: object) -> AdornSettings:
    return load_settings(
        root,
        out_dir=Path(out_dir) if out_dir else None,
        config_path=Path(config).expanduser().resolve() if config else None,
        **extra,
    )


@app.command()
def build(
    project: str = typer.Argument(".", help="Project root to scan"),
    out_dir: Optional[str] = typer.Option(None, "--out-dir", "-o", help="Artifact directory"),
    config: Optional[str] = typer.Option(None, help="pyproject.toml to read [tool.adornpy] from"),
    validation: Optional[str] = typer.Option(None, help="Validation mode: none|runtime|precompiled"),
    title: Optional[str] = typer.Option(None, help="OpenAPI info.title"),
    api_version: Optional[str] = typer.Option(None, help="OpenAPI info.version"),
    max_files: Optional[int] = typer.Option(None, help="Limit scanned files (debug)"),
    force: bool = typer.Option(False, "--force", "-f", help="Rebuild even when up to date"),
) -> None:
    root = _project(project)
    if validation is not None and validation not in ("none", "runtime", "precompiled"):
        raise typer.BadParameter("validation must be one of: none, runtime, precompiled")
    settings = _settings(
        root,
        out_dir,
        config,
        validation_mode=validation,
        title=title,
        api_version=api_version,
        max_files=max_files,
    )

    try:
        result = run_build(root, settings, force=force)
    except ManifestBuildError as exc:
        err_console.print(f"[bold red]build failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if result.skipped:
        console.print(f"[bold green]adornpy[/bold green] up to date: {result.out_dir}")
        return

    console.print(f"[bold green]adornpy[/bold green] build: {root}")
    console.print(f"Rebuilt because: {result.stale.reason}" + (f" ({result.stale.detail})" if result.stale.detail else ""))
    console.print(f"Python files scanned: {result.files_scanned}")
    console.print(f"Controllers: [bold]{result.controllers}[/bold]  Operations: [bold]{result.operations}[/bold]")
    console.print(f"Schemas: {result.schemas}")
    console.print(f"Validation: {settings.validation_mode}" + (" (written)" if result.validators_written else ""))
    if result.warnings:
        console.print("")
        console.print(f"[yellow]Warnings ({len(result.warnings)}):[/yellow]")
        for w in result.warnings[:50]:
            console.print(f"  {w}", markup=False)
        if len(result.warnings) > 50:
            console.print(f"  … and {len(result.warnings) - 50} more")
    console.print("")
    console.print(f"Artifacts: {result.out_dir}")


@app.command()
def status(
    project: str = typer.Argument(".", help="Project root"),
    out_dir: Optional[str] = typer.Option(None, "--out-dir", "-o", help="Artifact directory"),
    config: Optional[str] = typer.Option(None, help="pyproject.toml to compare against"),
    check: bool = typer.Option(False, help="Exit with code 1 when artifacts are stale"),
) -> None:
    root = _project(project)
    settings = _settings(root, out_dir, config)
    result = is_stale(settings.out_dir, settings.config_path, settings=settings.fingerprint())

    if result.stale:
        detail = f" ({result.detail})" if result.detail else ""
        console.print(f"[yellow]stale[/yellow]: {result.reason}{detail}")
        if check:
            raise typer.Exit(code=1)
    else:
        console.print("[green]up to date[/green]")


@app.command()
def routes(
    project: str = typer.Argument(".", help="Project root"),
    out_dir: Optional[str] = typer.Option(None, "--out-dir", "-o", help="Artifact directory"),
    method: Optional[str] = typer.Option(None, help="Filter by HTTP method (GET/POST/...)"),
    path_contains: Optional[str] = typer.Option(None, help="Substring match on HTTP path"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    root = _project(project)
    settings = _settings(root, out_dir, None)
    try:
        manifest = read_manifest(settings.out_dir)
    except ArtifactLoadError as exc:
        err_console.print(f"[bold red]error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    rows = []
    for ctrl in manifest.controllers:
        for op in ctrl.operations:
            if method and op.http.method != method.upper():
                continue
            if path_contains and path_contains not in op.http.path:
                continue
            rows.append(
                {
                    "method": op.http.method,
                    "path": op.http.path,
                    "operationId": op.operation_id,
                    "handler": f"{ctrl.controller_id}.{op.handler.method_name}",
                    "statuses": [r.status for r in op.responses],
                }
            )

    if format.lower() == "json":
        typer.echo(json.dumps(rows, indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("OPERATION")
    table.add_column("HANDLER")
    table.add_column("STATUS", no_wrap=True)
    for r in rows:
        table.add_row(
            r["method"], r["path"], r["operationId"], r["handler"], ",".join(map(str, r["statuses"]))
        )
    console.print(f"[bold]Routes:[/bold] {len(rows)}")
    console.print(table)


@app.command()
def openapi(
    project: str = typer.Argument(".", help="Project root"),
    out_dir: Optional[str] = typer.Option(None, "--out-dir", "-o", help="Artifact directory"),
    out: Optional[str] = typer.Option(None, help="Copy the document here (default: print to stdout)"),
) -> None:
    root = _project(project)
    settings = _settings(root, out_dir, None)
    try:
        doc = read_openapi(settings.out_dir)
    except ArtifactLoadError as exc:
        err_console.print(f"[bold red]error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    text = json.dumps(doc, indent=2)
    if out:
        out_path = Path(out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        console.print(f"[bold green]Wrote[/bold green] OpenAPI document to: {out_path}")
    else:
        typer.echo(text)


@app.command()
def ping() -> None:
    console.print("pong")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
