from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the ingestion service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def send_reading(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST one reading; rejected readings are returned, not raised."""
        try:
            response = self._client.post("/ingest", json=payload)
        except httpx.HTTPError as exc:
            self._handle_transport_error(exc)
        body = self._json(response)
        if response.status_code >= 500:
            self._fail(response.status_code, body.get("error"))
        return body

    def latest(self, user_id: Optional[str], limit: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": limit}
        if user_id:
            params["user_id"] = user_id
        return self._get("/readings/latest", params)

    def stats(self, start: datetime, end: datetime, user_id: Optional[str]) -> Dict[str, Any]:
        params: Dict[str, Any] = {"start": start.isoformat(), "end": end.isoformat()}
        if user_id:
            params["user_id"] = user_id
        return self._get("/readings/stats", params)

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._fail(exc.response.status_code, self._detail(exc.response))
        except httpx.HTTPError as exc:
            self._handle_transport_error(exc)
        return response.json()

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError:
            return {"success": False, "error": response.text.strip()}

    @staticmethod
    def _detail(response: httpx.Response) -> str | None:
        try:
            data = response.json()
        except ValueError:
            return response.text.strip()
        detail = data.get("detail") or data.get("error")
        return str(detail) if detail is not None else None

    @staticmethod
    def _fail(status_code: int, detail: str | None) -> None:
        typer.secho(
            f"Request failed with status {status_code}: {detail or 'no detail provided.'}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def _handle_transport_error(self, exc: httpx.HTTPError) -> None:
        typer.secho(
            f"Could not reach {self._config.base_url}: {exc}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
