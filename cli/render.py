from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_measurement(measurement: Dict[str, Any]) -> str:
    unit = measurement.get("unit") or ""
    return f"{measurement.get('name')}={measurement.get('value')}{' ' + unit if unit else ''}"


def render_sensor(payload: Dict[str, Any]) -> None:
    echo_heading(f"Sensor {payload.get('id')}")
    pairs = [
        ("account_id", payload.get("account_id")),
        ("name", payload.get("name")),
        ("state", payload.get("state")),
        ("location_enabled", payload.get("location_enabled")),
        ("sample_frequency", payload.get("sample_frequency")),
    ]
    if "latitude" in payload and "longitude" in payload:
        pairs.append(("location", f"{payload['latitude']:.6f}, {payload['longitude']:.6f}"))
    echo_key_values(pairs)


def render_sensors(payload: Dict[str, Any]) -> None:
    sensors: List[Dict[str, Any]] = payload.get("sensors") or []
    echo_heading("Sensors")
    if not sensors:
        typer.echo("No sensors registered.")
        return
    for sensor in sensors:
        typer.echo(f"  - {sensor.get('id')}: {sensor.get('name')} [{sensor.get('state')}]")


def render_readings(payload: Dict[str, Any]) -> None:
    echo_heading(f"Readings for {payload.get('account_id')}:{payload.get('sensor_id')}")
    readings = payload.get("readings") or []
    if not readings:
        typer.echo("No readings in range.")
        return
    for reading in readings:
        values = ", ".join(_format_measurement(item) for item in reading.get("measurements", []))
        typer.echo(f"  {reading.get('timestamp')}  {values}")


def render_hourly(payload: Dict[str, Any]) -> None:
    echo_heading(f"Hourly readings for {payload.get('account_id')}:{payload.get('sensor_id')}")
    readings = payload.get("readings") or []
    if not readings:
        typer.echo("No hourly rollups in range.")
        return
    for reading in readings:
        typer.echo(f"  {reading.get('timestamp')}")
        for item in reading.get("measurements", []):
            typer.echo(
                f"    {item.get('name')}: min {_format_measurement(item.get('min', {}))}"
                f" / max {_format_measurement(item.get('max', {}))}"
            )


def render_latest(payload: Dict[str, Any]) -> None:
    sensors: Dict[str, Dict[str, Any]] = payload.get("sensors") or {}
    echo_heading("Latest readings")
    if not sensors:
        typer.echo("No sensors registered.")
        return
    for sensor_id, entry in sensors.items():
        measurements = entry.get("measurements") or []
        if entry.get("timestamp") is None:
            typer.echo(f"  - {sensor_id} ({entry.get('name')}): no readings this month")
            continue
        values = ", ".join(_format_measurement(item) for item in measurements)
        typer.echo(f"  - {sensor_id} ({entry.get('name')}) at {entry.get('timestamp')}: {values}")


def render_health(payload: Dict[str, Any]) -> None:
    echo_key_values([("status", payload.get("status")), ("table", payload.get("table"))])
