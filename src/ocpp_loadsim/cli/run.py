"""CLI: loadsim run"""

import json
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from ocpp_loadsim.models.identity import ProtocolSubtype
from ocpp_loadsim.models.metrics import COUNTER_FIELDS, AggregateMetrics

console = Console()


def _get_config(path, **overrides):
    from ocpp_loadsim.cli.main import _get_config
    return _get_config(path, **overrides)


def _run(coro):
    from ocpp_loadsim.cli.main import _run
    return _run(coro)


def _render(aggregate: AggregateMetrics, per_session: bool) -> None:
    table = Table(title=f"Run summary ({aggregate.session_count} sessions, {aggregate.elapsed_time_ms}ms)")
    table.add_column("Metric", style="bold")
    table.add_column("Total", justify="right")
    table.add_row("failed_sessions", str(aggregate.failed_sessions))
    for name in COUNTER_FIELDS:
        table.add_row(name, str(getattr(aggregate, name)))
    table.add_row("max_connect_time_ms", str(aggregate.max_connect_time_ms))
    if aggregate.connect_count:
        table.add_row("avg_connect_time_ms", str(aggregate.connect_time_ms_total // aggregate.connect_count))
    console.print(table)

    if per_session:
        sessions = Table(title="Sessions")
        sessions.add_column("Device", style="bold")
        sessions.add_column("Cycles", justify="right")
        sessions.add_column("Connects", justify="right")
        sessions.add_column("Open failures", justify="right")
        sessions.add_column("Messages", justify="right")
        sessions.add_column("Max connect (ms)", justify="right")
        sessions.add_column("Elapsed (ms)", justify="right")
        for m in aggregate.sessions:
            sessions.add_row(m.device_id, str(m.cycles), str(m.connect_count),
                             str(m.open_failures), str(m.message_count), str(m.max_connect_time_ms),
                             str(m.elapsed_time_ms))
        console.print(sessions)


@click.command("run")
@click.option("-n", "--sessions", "session_count", default=1, type=click.IntRange(min=1),
              help="Number of simulated stations")
@click.option("-c", "--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="JSON config file (default ~/.loadsim/config.json)")
@click.option("--host", default=None)
@click.option("--port", default=None, type=int)
@click.option("--scheme", default=None, type=click.Choice(["ws", "wss"]))
@click.option("--path-prefix", default=None)
@click.option("--subtype", default=None, type=click.Choice([s.value for s in ProtocolSubtype]))
@click.option("--seed", default=None, type=int)
@click.option("--per-session", is_flag=True, help="Also print one row per session")
@click.option("--json-output", "--json", is_flag=True)
def run_cmd(session_count: int, config_path: Optional[str], host, port, scheme, path_prefix,
            subtype, seed, per_session: bool, json_output: bool):
    """Run simulated stations until every reconnect budget is used up."""
    from ocpp_loadsim.coordinator import RunCoordinator
    from ocpp_loadsim.transport.websocket import WebSocketTransport

    cfg = _get_config(
        config_path,
        transport_host=host, transport_port=port, url_scheme=scheme,
        url_path_prefix=path_prefix, protocol_subtype=subtype, seed=seed,
    )

    async def _go():
        coordinator = RunCoordinator(cfg, WebSocketTransport.from_config(cfg))
        if json_output:
            return await coordinator.run(session_count)
        with console.status(f"Running {session_count} session(s)..."):
            return await coordinator.run(session_count)

    aggregate = _run(_go())
    if json_output:
        click.echo(json.dumps(aggregate.model_dump(exclude=None if per_session else {"sessions"}), indent=2))
        return
    _render(aggregate, per_session)
