"""
Envelope CLI - manage named sets of environment variables

Main entry point for the envelope command-line tool.
"""

import functools
import logging
import os
import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .core.checker import check as check_environments
from .core.discovery import resolve_store_path
from .core.errors import EnvelopeError, StoreIOError, StoreNotFound
from .core.lexer import dump, parse, parse_lenient
from .core.store import EnvironmentStore, ImportMode
from .log import configure_logging


console = Console()
logger = logging.getLogger(__name__)

HINTS = {
    StoreNotFound: "Run 'envelope init' to create a store in this directory.",
}


def handle_errors(func):
    """Print core errors the CLI way and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except EnvelopeError as err:
            logger.debug("command failed", exc_info=True)
            console.print(f"[red]Error: {escape(str(err))}[/red]", highlight=False)
            hint = HINTS.get(type(err))
            if hint:
                console.print(f"[dim]{hint}[/dim]")
            sys.exit(1)
    return wrapper


def _store_path(ctx: click.Context, for_init: bool = False) -> Path:
    return resolve_store_path(ctx.obj.get("store"), for_init=for_init)


def _load(ctx: click.Context) -> EnvironmentStore:
    return EnvironmentStore.load(_store_path(ctx))


def _read_input(filename: str) -> str:
    """Read a .env file, or stdin when filename is '-'."""
    if filename == "-":
        try:
            return click.get_text_stream("stdin").read()
        except (OSError, UnicodeDecodeError) as err:
            raise StoreIOError(f"cannot read stdin: {err}") from err
    try:
        return Path(filename).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise StoreIOError(f"cannot read {filename}: {err}", filename) from err


def _truncate(value: str, width: int) -> str:
    if width and len(value) > width:
        return value[:width] + "…"
    return value


def _pairs_table(title: str, pairs, truncate: int = 0) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    for key, value in pairs:
        table.add_row(escape(key), escape(_truncate(value, truncate)))
    return table


def show_stdin(stream) -> None:
    """Pretty-print piped .env content without touching the store."""
    pairs = parse(stream.read())
    if not pairs:
        console.print("[yellow]No variables found in input[/yellow]")
        return
    console.print(_pairs_table("Variables", pairs))


@click.group(invoke_without_command=True)
@click.option('--store', 'store', type=click.Path(dir_okay=False),
              help='Path of the .envelope store (default: nearest .envelope, or $ENVELOPE_FILE)')
@click.option('-v', '--verbose', is_flag=True, help='Show debug logging')
@click.version_option(__version__, prog_name="envelope")
@click.pass_context
def cli(ctx, store, verbose):
    """
    Envelope - keep several named environments in one .envelope file

    Pipe .env content into envelope without a command to pretty-print it.
    """
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["store"] = store

    if ctx.invoked_subcommand is None:
        stdin = click.get_text_stream("stdin")
        if stdin.isatty():
            console.print("[yellow]Use --help to see available commands[/yellow]")
            return
        handle_errors(show_stdin)(stdin)


@cli.command()
@click.pass_context
@handle_errors
def init(ctx):
    """Create an empty .envelope store in the current directory."""
    store = EnvironmentStore.init(_store_path(ctx, for_init=True))
    console.print(f"[green]✓ Created {escape(str(store.path))}[/green]")


@cli.command(name="import")
@click.argument('env')
@click.argument('file', type=click.Path(dir_okay=False, allow_dash=True))
@click.option('--keep-existing', is_flag=True, help='Keep stored values for keys that already exist')
@click.option('--skip-invalid', is_flag=True, help='Skip malformed lines instead of aborting')
@click.pass_context
@handle_errors
def import_env(ctx, env, file, keep_existing, skip_invalid):
    """
    Import variables from a .env FILE into environment ENV.

    ENV is created if it does not exist. Use '-' as FILE to read stdin.
    """
    store = _load(ctx)
    content = _read_input(file)

    if skip_invalid:
        pairs, errors = parse_lenient(content)
        for error in errors:
            console.print(f"[yellow]⚠ Skipped line {error.line_number}: {escape(error.raw)}[/yellow]",
                          highlight=False)
    else:
        pairs = parse(content)

    mode = ImportMode.KEEP_EXISTING if keep_existing else ImportMode.OVERWRITE
    result = store.import_pairs(env, pairs, mode)
    store.save()

    verb = "Created" if result.created else "Updated"
    console.print(f"[green]✓ {verb} '{escape(env)}'[/green]")
    console.print(
        f"[dim]added: {result.added}, overwritten: {result.overwritten}, "
        f"unchanged: {result.unchanged}[/dim]"
    )


@cli.command()
@click.argument('env')
@click.argument('key')
@click.argument('value')
@click.pass_context
@handle_errors
def add(ctx, env, key, value):
    """Set KEY to VALUE in environment ENV."""
    store = _load(ctx)
    result = store.set_variable(env, key, value)
    store.save()
    action = "Added" if result.added else "Updated"
    console.print(f"[green]✓ {action} {escape(key)} in '{escape(env)}'[/green]")


@cli.command(name="list")
@click.argument('env', required=False)
@click.option('--truncate', type=click.IntRange(min=0), default=0,
              help='Shorten displayed values to this many characters (0 = full)')
@click.pass_context
@handle_errors
def list_cmd(ctx, env, truncate):
    """
    List environments, or the variables of ENV.
    """
    store = _load(ctx)

    if env is not None:
        pairs = store.list_variables(env)
        if not pairs:
            console.print(f"[yellow]'{escape(env)}' has no variables[/yellow]")
            return
        console.print(_pairs_table(escape(env), pairs, truncate))
        return

    summaries = store.list()
    if not summaries:
        console.print("[yellow]No environments yet[/yellow]")
        console.print("[dim]Run 'envelope import ENV FILE' to add one.[/dim]")
        return

    table = Table(title="Environments", box=box.ROUNDED)
    table.add_column("Environment", style="cyan", no_wrap=True)
    table.add_column("Variables", style="magenta", justify="right")
    for summary in summaries:
        table.add_row(escape(summary.name), str(summary.variable_count))
    console.print(table)


@cli.command()
@click.argument('env')
@click.pass_context
@handle_errors
def export(ctx, env):
    """Print environment ENV in .env format."""
    store = _load(ctx)
    click.echo(dump(store.list_variables(env)), nl=False)


@cli.command()
@click.argument('src')
@click.argument('dst')
@click.pass_context
@handle_errors
def duplicate(ctx, src, dst):
    """Copy environment SRC into a new environment DST."""
    store = _load(ctx)
    store.duplicate(src, dst)
    store.save()
    console.print(f"[green]✓ Duplicated '{escape(src)}' into '{escape(dst)}'[/green]")


@cli.command()
@click.argument('env')
@click.pass_context
@handle_errors
def drop(ctx, env):
    """Remove environment ENV entirely."""
    store = _load(ctx)
    if not store.drop(env):
        console.print(f"[yellow]'{escape(env)}' does not exist[/yellow]")
        return
    store.save()
    console.print(f"[green]✓ Dropped '{escape(env)}'[/green]")


@cli.command()
@click.argument('key')
@click.option('--env', 'env', help='Only delete KEY from this environment')
@click.pass_context
@handle_errors
def delete(ctx, key, env):
    """Delete KEY from ENV, or from every environment."""
    store = _load(ctx)
    removed = store.delete_variable(key, env)
    if not removed:
        console.print(f"[yellow]{escape(key)} is not set[/yellow]")
        return
    store.save()
    console.print(f"[green]✓ Deleted {escape(key)} from {removed} environment(s)[/green]")


@cli.command()
@click.option('--details', is_flag=True, help='Show every environment with what differs')
@click.pass_context
@handle_errors
def check(ctx, details):
    """
    Show which environments are active in the current shell.

    An environment is active when all of its variables are set to the
    stored values. Other variables in the shell are ignored.
    """
    store = _load(ctx)
    reports = check_environments(store.environments, dict(os.environ))

    if details:
        table = Table(title="Environment Activity", box=box.ROUNDED)
        table.add_column("Environment", style="cyan", no_wrap=True)
        table.add_column("Status")
        table.add_column("Missing", style="yellow")
        table.add_column("Different", style="red")
        for report in reports:
            status = "[green]✓ Active[/green]" if report.active else "[dim]Inactive[/dim]"
            table.add_row(escape(report.name), status,
                          escape(", ".join(report.missing)), escape(", ".join(report.mismatched)))
        console.print(table)
        return

    active = [report.name for report in reports if report.active]
    if not active:
        console.print("[yellow]No active environments[/yellow]")
        return
    for name in active:
        console.print(f"[green]●[/green] {escape(name)}", highlight=False)


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
