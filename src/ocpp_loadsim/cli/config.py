"""CLI: loadsim config show"""

import json

import click
from rich.console import Console
from rich.table import Table

console = Console()


def _get_config(path, **overrides):
    from ocpp_loadsim.cli.main import _get_config
    return _get_config(path, **overrides)


@click.group()
def config():
    """Configuration commands."""


@config.command("show")
@click.option("-c", "--config", "config_path", default=None, type=click.Path(dir_okay=False))
@click.option("--json-output", "--json", is_flag=True)
def config_show(config_path, json_output):
    """Show the effective configuration (file, then WS_* env vars)."""
    cfg = _get_config(config_path)
    values = cfg.model_dump(mode="json", by_alias=True)
    if json_output:
        click.echo(json.dumps(values, indent=2))
        return
    table = Table(title="Effective configuration")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in values.items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)
