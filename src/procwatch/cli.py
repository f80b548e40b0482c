"""CLI entry point for procwatch."""

import io
import json
import sys
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from procwatch import __version__
from procwatch.check import CHECK_NAME, ProcsCheck
from procwatch.config import (
    ConfigError, apply_overrides, default_config_path, load_config,
    resolve_config, validate_config,
)
from procwatch.enumerator import EnumerationError
from procwatch.models import CheckResult, Severity
from procwatch.thresholds import METRIC_FIELDS

PLUGIN_NAME = "CheckProcs"


def _obj(ctx) -> dict:
    # Empty when a command runs standalone (check-procs) rather than under the group.
    return ctx.obj or {}


def _get_config(ctx) -> dict:
    """Load config using the path from context (or default)."""
    path = _obj(ctx).get("config_path")
    if path:
        path = Path(path)
    return load_config(path)


def _get_console(ctx, stderr: bool = False) -> Console:
    """Create a Rich console respecting --no-color, with UTF-8 forced on Windows."""
    no_color = _obj(ctx).get("no_color", False)
    # Force UTF-8 output to avoid Windows cp1252 encoding errors with Rich
    if sys.platform == "win32":
        stream = sys.stderr if stderr else sys.stdout
        out = io.TextIOWrapper(stream.buffer, encoding="utf-8", errors="replace")
        return Console(file=out, no_color=no_color, force_terminal=True)
    return Console(no_color=no_color, stderr=stderr)


def _resolve(ctx, options: dict):
    """Merge file config with command-line options into a CheckConfig."""
    overrides = dict(options)
    # An unset flag must not override a true value from the config file.
    for key in ("match_self", "match_parent"):
        if not overrides.get(key):
            overrides[key] = None
    cfg = apply_overrides(_get_config(ctx), overrides)
    return resolve_config(cfg)


def _plugin_exit(severity: Severity, message: str) -> None:
    click.echo(f"{PLUGIN_NAME} {severity.value.upper()}: {message}")
    if severity.exit_code:
        raise SystemExit(severity.exit_code)


def filter_options(f):
    """Attach the threshold and filter options shared by check and list."""
    options = [
        click.option("-w", "--warn-over", "warn_over", type=int, default=None,
                     help="Trigger a warning if over a number."),
        click.option("-c", "--critical-over", "crit_over", type=int, default=None,
                     help="Trigger a critical if over a number."),
        click.option("-W", "--warn-under", "warn_under", type=int, default=None,
                     help="Trigger a warning if under a number."),
        click.option("-C", "--critical-under", "crit_under", type=int, default=None,
                     help="Trigger a critical if under a number."),
        click.option("-t", "--metric", "metric", type=click.Choice(METRIC_FIELDS),
                     default=None, help="Sum this field instead of counting processes."),
        click.option("-m", "--match-self", "match_self", is_flag=True,
                     help="Match itself."),
        click.option("-M", "--match-parent", "match_parent", is_flag=True,
                     help="Match the parent process."),
        click.option("-p", "--pattern", "cmd_pat", default=None,
                     help="Match a command against this regular expression."),
        click.option("-f", "--file-pid", "pid_file", type=click.Path(), default=None,
                     help="Check against the PID read from this file."),
        click.option("-z", "--virtual-memory-size", "vsz", type=int, default=None,
                     help="Match processes with at least this virtual memory size."),
        click.option("-r", "--resident-set-size", "rss", type=int, default=None,
                     help="Match processes with at least this resident set size."),
        click.option("-P", "--proportional-set-size", "pcpu", type=float, default=None,
                     help="Match processes using at least this CPU percentage."),
        click.option("-s", "--state", "state", default=None,
                     help="Comma-separated process states, e.g. Z for zombie."),
        click.option("-u", "--user", "user", default=None,
                     help="Comma-separated owning users."),
    ]
    for option in reversed(options):
        f = option(f)
    return f


@click.group()
@click.option("--config", "config_path", type=click.Path(), default=None,
              help="Path to config file.")
@click.option("--no-color", is_flag=True, help="Disable colored output.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def cli(ctx, config_path, no_color, verbose):
    """procwatch - count matching processes and alert on thresholds."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["no_color"] = no_color
    ctx.obj["verbose"] = verbose


@cli.command()
def version():
    """Show procwatch version."""
    click.echo(f"procwatch {__version__}")


@cli.command("check")
@filter_options
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check_cmd(ctx, as_json, **options):
    """Count matching processes and exit with the plugin status code.

    \b
    Examples:
      procwatch check -p chef-client -W 1
      procwatch check -s Z -w 5 -c 10
    """
    from procwatch.logging_setup import setup_logging

    verbose = _obj(ctx).get("verbose", False)
    logger = setup_logging(verbose)

    try:
        config = _resolve(ctx, options)
    except (ConfigError, yaml.YAMLError, OSError) as e:
        logger.error("config error: %s", e)
        if as_json:
            result = CheckResult(name=CHECK_NAME, severity=Severity.UNKNOWN, message=str(e))
            click.echo(json.dumps(result.to_dict(), indent=2))
            raise SystemExit(Severity.UNKNOWN.exit_code)
        _plugin_exit(Severity.UNKNOWN, str(e))
        return

    logger.info("check started")
    result = ProcsCheck(config, verbose=verbose).run()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.severity.exit_code:
            raise SystemExit(result.severity.exit_code)
        return

    if verbose and result.details:
        _get_console(ctx, stderr=True).print(result.details, markup=False, highlight=False)
    _plugin_exit(result.severity, result.message)


@cli.command("list")
@filter_options
@click.pass_context
def list_cmd(ctx, **options):
    """Show the processes the given filters match."""
    console = _get_console(ctx)
    try:
        config = _resolve(ctx, options)
    except (ConfigError, yaml.YAMLError, OSError) as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        raise SystemExit(Severity.UNKNOWN.exit_code)

    try:
        matched = ProcsCheck(config).matching()
    except EnumerationError as e:
        console.print(f"[red]Process listing failed:[/red] {escape(str(e))}")
        raise SystemExit(Severity.UNKNOWN.exit_code)

    table = Table(title=f"procwatch: {len(matched)} matching processes")
    table.add_column("PID", justify="right", style="cyan")
    table.add_column("User")
    table.add_column("VSZ", justify="right")
    table.add_column("RSS", justify="right")
    table.add_column("%CPU", justify="right")
    table.add_column("State")
    table.add_column("Command", overflow="fold")

    def cell(value) -> str:
        return "-" if value is None else str(value)

    for r in matched:
        table.add_row(str(r.pid), escape(cell(r.user)), cell(r.vsz), cell(r.rss),
                      cell(r.pcpu), r.state or "-", escape(r.command))
    console.print(table)


@cli.command("validate")
@click.pass_context
def validate_cmd(ctx):
    """Validate the config file."""
    console = _get_console(ctx)
    config_path = _obj(ctx).get("config_path")
    resolved_path = Path(config_path) if config_path else default_config_path()
    try:
        cfg = _get_config(ctx)
    except yaml.YAMLError as e:
        console.print(f"[red]Config file is not valid YAML:[/red] {escape(str(e))}")
        raise SystemExit(1)
    errors = validate_config(cfg)
    if errors:
        console.print("[red]Config validation failed:[/red]")
        for err in errors:
            console.print(f"  [red]✘[/red] {err}")
        raise SystemExit(1)
    else:
        console.print(f"[green]✔[/green] Config is valid: {resolved_path}")
