from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the temperature service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def query_entities(self, params: Dict[str, Optional[str]]) -> List[Dict[str, Any]]:
        query = {key: value for key, value in params.items() if value not in (None, "")}
        payload = self._get("/ngsi-ld/v1/entities", params=query)
        if not isinstance(payload, list):
            raise typer.BadParameter("Unexpected response payload when querying entities.")
        return payload

    def latest(self) -> List[Dict[str, Any]]:
        payload = self._get("/api/temperatures")
        if not isinstance(payload, list):
            raise typer.BadParameter("Unexpected response payload when fetching latest temperatures.")
        return payload

    def health(self) -> Dict[str, Any]:
        return self._get("/health")

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
