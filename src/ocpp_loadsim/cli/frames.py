"""CLI: loadsim frame, loadsim decode"""

import random

import click
from rich.console import Console
from rich.markup import escape

from ocpp_loadsim.models.identity import ProtocolSubtype

console = Console()

SUBTYPES = [s.value for s in ProtocolSubtype]


@click.command("frame")
@click.argument("action")
@click.option("--subtype", default="ocpp1.6", type=click.Choice(SUBTYPES))
@click.option("--variant", default=None, help="Payload variant, e.g. Started/Ended for TransactionEvent")
@click.option("--seed", default=None, type=int)
def frame_cmd(action: str, subtype: str, variant, seed):
    """Print a sample outbound Call frame for ACTION."""
    from ocpp_loadsim.profiles import profile_for
    from ocpp_loadsim.transport.envelope import encode_call

    profile = profile_for(ProtocolSubtype(subtype))
    rng = random.Random(seed)
    device_id = profile.make_device_id(1, rng)
    try:
        payload = profile.sample(action, rng, device_id, variant=variant)
    except KeyError:
        console.print(f"[red]{subtype} stations do not send {action}. Known: {', '.join(profile.actions)}[/red]")
        raise SystemExit(1)
    _, text = encode_call(action, payload)
    click.echo(text)


@click.command("decode")
@click.argument("frame")
@click.option("--subtype", default="ocpp1.6", type=click.Choice(SUBTYPES))
def decode_cmd(frame: str, subtype: str):
    """Decode FRAME; for a Call, also print the reply a station would send."""
    from ocpp_loadsim.actions import registry_for, reply_to
    from ocpp_loadsim.errors import DecodeFailure
    from ocpp_loadsim.models.envelope import Call
    from ocpp_loadsim.transport.envelope import decode

    try:
        envelope = decode(frame)
    except DecodeFailure as e:
        console.print(f"[red]Decode failed: {e}[/red]")
        raise SystemExit(1)
    console.print(f"[green]{type(envelope).__name__}[/green] {escape(str(envelope.model_dump()))}")
    if not isinstance(envelope, Call):
        return
    reply, _ = reply_to(registry_for(ProtocolSubtype(subtype)), envelope)
    click.echo(reply)
