from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig

API_PREFIX = "/data-access/v1"


class ApiClient:
    """Minimal HTTP client for the data-access service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            headers={"Accept-Encoding": "gzip"},
        )

    def close(self) -> None:
        self._client.close()

    def get_sensor(self, sensor_id: str) -> Dict[str, Any]:
        return self._get(f"{API_PREFIX}/sensor/{sensor_id}", not_found=f"Sensor {sensor_id} was not found.")

    def update_sensor(self, sensor_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.put(f"{API_PREFIX}/sensor/{sensor_id}", json=changes)
            if response.status_code == 404:
                raise typer.BadParameter(f"Sensor {sensor_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            self._handle_transport_error(exc)
        return response.json()

    def list_sensors(self, account_id: str, state: Optional[str] = None) -> Dict[str, Any]:
        return self._get(f"{API_PREFIX}/sensors/account/{account_id}", params=_params(state=state))

    def get_readings(
        self,
        account_id: str,
        sensor_id: str,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> Dict[str, Any]:
        return self._get(
            f"{API_PREFIX}/sensor_readings",
            params=_params(
                account_id=account_id,
                sensor_id=sensor_id,
                start_time=start_time,
                end_time=end_time,
            ),
        )

    def get_hourly(
        self,
        account_id: str,
        sensor_id: str,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> Dict[str, Any]:
        return self._get(
            f"{API_PREFIX}/hourly_sensor_readings",
            params=_params(
                account_id=account_id,
                sensor_id=sensor_id,
                start_time=start_time,
                end_time=end_time,
            ),
        )

    def get_latest(self, account_id: str, state: Optional[str] = None) -> Dict[str, Any]:
        return self._get(
            f"{API_PREFIX}/last_sensor_readings/account/{account_id}",
            params=_params(state=state),
        )

    def healthcheck(self) -> Dict[str, Any]:
        return self._get("/healthcheck")

    def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        not_found: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
            if response.status_code == 404 and not_found:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            self._handle_transport_error(exc)
        return response.json()

    def _handle_transport_error(self, exc: httpx.TransportError) -> None:
        typer.secho(
            f"Could not reach {self._config.base_url}: {exc}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _params(**values: Any) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}
