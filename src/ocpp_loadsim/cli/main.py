"""
ocpp-loadsim CLI: `loadsim` command.

Commands:
  loadsim run                Run simulated stations against a CSMS
  loadsim config show        Print the effective configuration
  loadsim frame <action>     Print a sample outbound Call frame
  loadsim decode <frame>     Decode a frame and show the station's reply
"""

import asyncio
import logging
from typing import Any, Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from ocpp_loadsim.config import SimulatorConfig, load_config
from ocpp_loadsim.errors import ConfigError

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _get_config(path: Optional[str], **overrides: Any) -> SimulatorConfig:
    try:
        return load_config(path, overrides=overrides)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        for err in (e.details or {}).get("errors", []):
            loc = ".".join(str(part) for part in err.get("loc", ()))
            console.print(f"  [red]{loc}: {err.get('msg')}[/red]")
        raise SystemExit(2)


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("--log-level", default="warning",
              type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False))
def main(log_level: str):
    """OCPP load simulator: rapid connect/disconnect charging stations."""
    _setup_logging(log_level)


# Register subcommands from separate modules
from ocpp_loadsim.cli.run import run_cmd
from ocpp_loadsim.cli.config import config
from ocpp_loadsim.cli.frames import frame_cmd, decode_cmd

main.add_command(run_cmd)
main.add_command(config)
main.add_command(frame_cmd)
main.add_command(decode_cmd)


if __name__ == "__main__":
    main()
