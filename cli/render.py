from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _entity_row(entity: Dict[str, Any]) -> str:
    coordinates = ((entity.get("location") or {}).get("value") or {}).get("coordinates") or [None, None]
    observed = ((entity.get("dateObserved") or {}).get("value") or {}).get("@value")
    temperature = (entity.get("temperature") or {}).get("value")
    return (
        f"  - {observed} {entity.get('type')} {temperature} "
        f"at ({coordinates[1]}, {coordinates[0]}) id={entity.get('id')}"
    )


def render_entities(entities: List[Dict[str, Any]]) -> None:
    echo_heading(f"Entities ({len(entities)})")
    if not entities:
        typer.echo("No observations matched the query.")
        return
    for entity in entities:
        typer.echo(_entity_row(entity))


def render_latest(readings: List[Dict[str, Any]]) -> None:
    echo_heading("Latest Temperatures")
    if not readings:
        typer.echo("No devices reported during the last six hours.")
        return
    for reading in readings:
        kind = "water" if reading.get("water") else "air"
        typer.echo(
            f"  - {reading.get('device') or '<unknown>'}: {reading.get('temperature')} ({kind}) "
            f"at {reading.get('when')}"
        )


def render_health(payload: Dict[str, Any]) -> None:
    echo_heading("Service Health")
    echo_key_values([("status", payload.get("status"))])

    typer.echo()
    echo_heading("Ingestion")
    ingestion = payload.get("ingestion") or {}
    echo_key_values(
        [
            ("received", ingestion.get("received")),
            ("stored", ingestion.get("stored")),
            ("duplicate", ingestion.get("duplicate")),
            ("rejected", ingestion.get("rejected")),
            ("failed", ingestion.get("failed")),
        ]
    )

    migration = payload.get("migration") or {}
    if migration:
        typer.echo()
        echo_heading("Migration")
        echo_key_values(sorted(migration.items()))
