from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_entities, render_health, render_latest


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for querying the temperature context source.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("entities")
def entities_command(
    ctx: typer.Context,
    entity_type: List[str] = typer.Option(
        [],
        "--type",
        "-t",
        help="AirTemperatureObserved and/or WaterTemperatureObserved.",
    ),
    attrs: Optional[str] = typer.Option(None, "--attrs", help="Comma separated attribute names."),
    device: Optional[str] = typer.Option(None, "--device", "-d", help="Device identifier."),
    since: Optional[str] = typer.Option(None, "--from", help="Inclusive RFC 3339 start time."),
    until: Optional[str] = typer.Option(None, "--to", help="Exclusive RFC 3339 end time."),
    near: Optional[str] = typer.Option(
        None,
        "--near",
        help="LAT,LON,METERS approximated as a bounding box.",
    ),
    limit: int = typer.Option(0, "--limit", min=0, help="Maximum rows, 0 for no cap."),
    raw: bool = typer.Option(False, "--json", help="Print the raw JSON response."),
) -> None:
    """Query observations as NGSI-LD entities."""
    state = _get_state(ctx)
    params = _entity_params(entity_type, attrs, device, since, until, near, limit)
    entities = state.client.query_entities(params)
    if raw:
        typer.echo(json.dumps(entities, indent=2))
        return
    render_entities(entities)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recent reading of every device."""
    state = _get_state(ctx)
    render_latest(state.client.latest())


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Show service status and ingestion counters."""
    state = _get_state(ctx)
    render_health(state.client.health())


def _entity_params(
    entity_types: List[str],
    attrs: Optional[str],
    device: Optional[str],
    since: Optional[str],
    until: Optional[str],
    near: Optional[str],
    limit: int,
) -> dict[str, Optional[str]]:
    params: dict[str, Optional[str]] = {
        "type": ",".join(entity_types) or None,
        "attrs": attrs,
        "limit": str(limit) if limit else None,
    }
    if not entity_types and not attrs:
        params["attrs"] = "temperature"
    if device:
        params["q"] = f'refDevice=="{device}"'

    if since and until:
        params.update(timerel="between", timeAt=since, endTimeAt=until)
    elif since:
        params.update(timerel="after", timeAt=since)
    elif until:
        params.update(timerel="before", timeAt=until)

    if near:
        try:
            lat, lon, meters = (float(part) for part in near.split(","))
        except ValueError as exc:
            raise typer.BadParameter("--near expects LAT,LON,METERS.") from exc
        params.update(
            georel=f"near;maxDistance=={meters:g}",
            geometry="Point",
            coordinates=json.dumps([lon, lat]),
        )
    return params
