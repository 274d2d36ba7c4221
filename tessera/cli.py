"""Command-line interface for Tessera.

This module defines the CLI commands using the Click framework.

Commands:
- (none) / dev: Build, start the dev server and watch for changes.
- build: Build the site into the output directory once.
- init: Scaffold a new project and generate its pages.
- create: Copy a bundled layout or partial into the project.
- run: Run a single build task by name.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .errors import ConfigError, TaskFailure, UserInputError
from .logging import configure_logging


def _load_pipeline(ctx: click.Context, project_root: Path | None = None):
    from .build import Pipeline
    from .config import load_config

    root = project_root or Path.cwd()
    try:
        settings = load_config(root, ctx.obj["production"])
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from None
    return Pipeline(settings)


def _report_failure(exc: TaskFailure, title: str = "Build failed:") -> None:
    click.echo(click.style(title, fg="red", bold=True), err=True)
    click.echo(click.style(f"  Task: {exc.task_name}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.cause}", fg="white"), err=True)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="tessera")
@click.option("--production", is_flag=True, help="Minify output and strip unused CSS")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, production: bool, verbose: bool):
    """Tessera static site builder."""
    configure_logging(verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["production"] = True if production else None
    if ctx.invoked_subcommand is None:
        ctx.invoke(dev)


@cli.command()
@click.pass_context
def dev(ctx: click.Context):
    """Build, serve with live reload and rebuild on changes."""
    from .tasks import run_sync

    pipeline = _load_pipeline(ctx)
    try:
        run_sync(pipeline.default)
    except TaskFailure as exc:
        _report_failure(exc)
        raise SystemExit(1) from None
    except KeyboardInterrupt:
        click.echo("Stopped.")


@cli.command()
@click.pass_context
def build(ctx: click.Context):
    """Build the site into the output directory."""
    from .tasks import run_sync

    pipeline = _load_pipeline(ctx)
    try:
        run_sync(pipeline.build)
    except TaskFailure as exc:
        _report_failure(exc)
        raise SystemExit(1) from None
    click.echo(f"Built site into {pipeline.settings.paths.dist}")


@cli.command()
@click.argument("directory", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.pass_context
def init(ctx: click.Context, directory: Path | None):
    """Scaffold a new project and generate its pages."""
    from .tasks import run_sync

    root = (directory or Path.cwd()).resolve()
    root.mkdir(parents=True, exist_ok=True)
    pipeline = _load_pipeline(ctx, root)
    try:
        run_sync(pipeline.init)
    except TaskFailure as exc:
        _report_failure(exc, "Init failed:")
        raise SystemExit(1) from None
    click.echo(f"New Tessera site created at {root}")


@cli.command()
@click.argument("target", required=False)
@click.pass_context
def create(ctx: click.Context, target: str | None):
    """Copy a bundled layout or partial (CATEGORY:NAME) into the project."""
    from .scaffold import create as create_file

    pipeline = _load_pipeline(ctx)
    try:
        dest = create_file(target, pipeline.settings)
    except UserInputError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
        return
    click.echo(f"Created {pipeline.settings.paths.rel(dest)}")


@cli.command(name="run")
@click.argument("task_name", metavar="TASK")
@click.pass_context
def run_task(ctx: click.Context, task_name: str):
    """Run one build task by name."""
    from .tasks import run_sync

    pipeline = _load_pipeline(ctx)
    graphs = pipeline.exported()
    if task_name not in graphs:
        choices = ", ".join(sorted(graphs))
        raise click.BadParameter(f"unknown task '{task_name}' (choose from {choices})")
    try:
        run_sync(graphs[task_name])
    except TaskFailure as exc:
        _report_failure(exc, "Task failed:")
        raise SystemExit(1) from None


def main():
    """Entry point for the CLI application."""
    cli()
