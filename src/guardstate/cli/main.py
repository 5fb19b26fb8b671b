"""guardstate CLI entry point."""

import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from guardstate import __version__

console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(__version__, prog_name="guardstate")
def cli() -> None:
    """guardstate - a single-instance counter behind validating, auditing proxies."""
    pass


@cli.command()
@click.argument("script", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, path_type=Path),
    help="Project root directory. Defaults to current directory.",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to guardstate.yaml config file.",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug output.",
)
def run(script: Path, project: Path | None, config: Path | None, debug: bool) -> None:
    """Replay a script of reads, writes and counter steps.

    SCRIPT is a YAML or JSON file with 'initial' values and 'steps'.
    """
    from guardstate.audit import FanOutSink, MemorySink
    from guardstate.config import build_sink, load_config, resolve_paths
    from guardstate.errors import ConfigError
    from guardstate.script import format_results, load_script, run_script

    project_root = project or Path.cwd()

    try:
        cfg = resolve_paths(load_config(config_path=config, project_root=project_root), project_root)
    except ConfigError as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise SystemExit(1)

    _configure_logging("DEBUG" if debug else cfg.log.level)

    if debug:
        console.print(f"[dim]Config: {cfg.model_dump_json(indent=2, by_alias=True)}[/dim]\n")

    try:
        scr = load_script(script)
    except Exception as e:
        console.print(f"[red]Error loading script:[/red] {e}")
        raise SystemExit(1)

    console.print(f"[dim]Replaying {script} ({len(scr.steps)} steps)[/dim]\n")

    trail = MemorySink()
    results = run_script(scr, cfg, FanOutSink(trail, build_sink(cfg.audit)))

    output = format_results(results)
    if trail.entries:
        table = Table(title="Audit trail")
        table.add_column("Time", style="dim")
        table.add_column("Property", style="cyan")
        table.add_column("Old")
        table.add_column("New", style="green")
        for entry in trail.entries:
            table.add_row(
                entry.timestamp.strftime("%H:%M:%S.%f")[:-3],
                entry.property,
                repr(entry.old_value),
                repr(entry.new_value),
            )
        console.print(table)

    if any(not r.ok for r in results):
        console.print(Panel(output, title="[red]Writes Rejected[/red]", border_style="red"))
        raise SystemExit(1)
    console.print(Panel(output, title="[green]All Writes Accepted[/green]", border_style="green"))


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
def check(path: Path) -> None:
    """Validate a config file and its rule expressions.

    PATH is the path to a guardstate.yaml file.
    """
    from guardstate.config import load_config
    from guardstate.errors import ConfigError

    try:
        cfg = load_config(config_path=path)
    except ConfigError as e:
        console.print(f"[red]✗[/red] Invalid: {e}")
        raise SystemExit(1)

    rule_count = sum(len(f.rules) for f in cfg.rule_set().fields.values())
    console.print(f"[green]✓[/green] Valid: {rule_count} rules on {len(cfg.fields)} fields")


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output file for the rules JSON. Defaults to stdout.",
)
@click.option(
    "--pretty/--compact",
    default=True,
    help="Pretty-print JSON output (default: pretty).",
)
def compile(path: Path, output: Path | None, pretty: bool) -> None:
    """Compile the rules of a config file to JSON.

    PATH is the path to a guardstate.yaml file.
    """
    from guardstate.config import load_config
    from guardstate.errors import ConfigError

    try:
        cfg = load_config(config_path=path)
    except ConfigError as e:
        console.print(f"[red]Rule error:[/red] {e}")
        raise SystemExit(1)

    json_output = cfg.rule_set().model_dump_json(indent=2 if pretty else None)

    if output:
        output.write_text(json_output)
        console.print(f"[green]✓[/green] Compiled to {output}")
    else:
        click.echo(json_output)


@cli.command()
def init() -> None:
    """Initialize guardstate in the current directory.

    Creates:
    - guardstate.yaml
    - scripts/example.yaml
    """
    project_root = Path.cwd()

    config_file = project_root / "guardstate.yaml"
    if not config_file.exists():
        config_file.write_text(
            """\
# guardstate configuration
version: "0.1"

# Field name -> rule expression. Join rules with "and".
# Rules: numeric, integer, string, required, min_length(n), max_length(n),
#        min(n), max(n), between(lo, hi), one_of(...), matches('regex')
fields:
  age: "numeric"
  name: "string and min_length(2)"
  # count: "min(0)"

# Reject writes to, and hide reads of, fields not listed above
# strict: false

# Log a notice when a read hits a property that does not exist
# notice_missing: true

audit:
  # memory | logging | console | jsonl
  sink: console
  # path: audit.jsonl

# logging:
#   level: INFO
"""
        )
        console.print(f"[green]✓[/green] Created {config_file.name}")
    else:
        console.print(f"[yellow]-[/yellow] {config_file.name} already exists")

    script_file = project_root / "scripts" / "example.yaml"
    if not script_file.exists():
        script_file.parent.mkdir(parents=True, exist_ok=True)
        script_file.write_text(
            json.dumps(
                {
                    "initial": {"name": "Alice", "age": 30},
                    "steps": [
                        {"set": "age", "value": "abc"},
                        {"set": "name", "value": "Al"},
                        {"get": "nickname"},
                        {"increment": 3},
                        {"decrement": 1},
                    ],
                },
                indent=2,
            )
            + "\n"
        )
        console.print(f"[green]✓[/green] Created {script_file.relative_to(project_root)}")
    else:
        console.print(f"[yellow]-[/yellow] {script_file.relative_to(project_root)} already exists")

    console.print("\n[dim]guardstate initialized. Try: guardstate run scripts/example.yaml[/dim]")


@cli.command()
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, path_type=Path),
    help="Project root directory. Defaults to current directory.",
)
def config(project: Path | None) -> None:
    """Show the current configuration."""
    from guardstate.config import load_config
    from guardstate.errors import ConfigError

    project_root = project or Path.cwd()
    try:
        cfg = load_config(project_root=project_root)
    except ConfigError as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise SystemExit(1)

    console.print(Panel(cfg.model_dump_json(indent=2, by_alias=True), title="guardstate Config"))


if __name__ == "__main__":
    cli()
