from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_health,
    render_hourly,
    render_latest,
    render_readings,
    render_sensor,
    render_sensors,
)
from datastore.partitions import TABLE_MONTH_FORMAT
from errors import DataAccessError
from models.records import DEFAULT_UNITS, Measurement, MeasurementKind
from services.query import QueryEngine, build_default_engine, build_provisioner


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for operating and querying the sensor data-access service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@contextmanager
def _local_engine() -> Iterator[QueryEngine]:
    """Engine talking straight to the configured backend, bypassing HTTP."""
    engine = build_default_engine()
    try:
        yield engine
    except DataAccessError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    finally:
        engine.shutdown()
        build_default_engine.cache_clear()


def parse_measurement(raw: str) -> Measurement:
    """Parse ``name=value`` or ``name=value:unit``; known kinds get their default unit."""
    name, separator, rest = raw.partition("=")
    if not separator or not name.strip():
        raise typer.BadParameter(f"Expected name=value[:unit], got {raw!r}.")
    value_text, _, unit = rest.partition(":")
    try:
        value = float(value_text)
    except ValueError as exc:
        raise typer.BadParameter(f"Measurement value {value_text!r} is not a number.") from exc
    name = name.strip()
    if not unit:
        unit = DEFAULT_UNITS.get(MeasurementKind.from_name(name), "")
    return Measurement(name=name, value=value, unit=unit)


def _parse_month(raw: str) -> datetime:
    try:
        return datetime.strptime(raw, TABLE_MONTH_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise typer.BadParameter(f"Month must look like YYYY-MM, got {raw!r}.") from exc


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Data-access API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for an HTTP response.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("provision")
def provision_command(
    months: int = typer.Option(3, "--months", min=1, help="Current month plus this many minus one before it."),
) -> None:
    """Create the sensors table and the monthly partitions."""
    provisioner = build_provisioner()
    try:
        created = provisioner.provision(months=months)
    except DataAccessError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    if not created:
        typer.echo("All tables already exist.")
        return
    for table in created:
        typer.secho(f"Created {table}", fg=typer.colors.GREEN)


@app.command("drop-partitions")
def drop_partitions_command(
    month: str = typer.Option(..., "--month", help="Month to drop, as YYYY-MM."),
) -> None:
    """Drop the readings and hourly partitions of one month."""
    provisioner = build_provisioner()
    try:
        dropped = provisioner.drop_partitions(_parse_month(month))
    except DataAccessError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    if not dropped:
        typer.echo(f"No partitions found for {month}.")
        return
    for table in dropped:
        typer.secho(f"Dropped {table}", fg=typer.colors.YELLOW)


@app.command("register-sensor")
def register_sensor_command(
    account_id: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    state: str = typer.Option("active", "--state"),
    name: Optional[str] = typer.Option(None, "--name"),
    latitude: Optional[float] = typer.Option(None, "--latitude", min=-90, max=90),
    longitude: Optional[float] = typer.Option(None, "--longitude", min=-180, max=180),
    sample_frequency: int = typer.Option(1, "--sample-frequency", min=1),
) -> None:
    """Register (or fully replace) a sensor record."""
    if (latitude is None) != (longitude is None):
        raise typer.BadParameter("--latitude and --longitude must be given together.")
    location = (latitude, longitude) if latitude is not None else None
    with _local_engine() as engine:
        sensor = engine.registry.upsert_sensor(
            account_id,
            sensor_id,
            state,
            location=location,
            name=name,
            sample_frequency=sample_frequency,
        )
    typer.secho(f"Registered sensor {sensor.id} for account {sensor.account_id}", fg=typer.colors.GREEN)


@app.command("record-reading")
def record_reading_command(
    account_id: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    measurement: List[str] = typer.Option(
        ..., "--measurement", "-m", help="name=value[:unit]; repeat for several measurements."
    ),
    timestamp: Optional[int] = typer.Option(None, "--timestamp", help="Epoch seconds (defaults to now)."),
) -> None:
    """Write one raw reading into its monthly partition."""
    measurements = [parse_measurement(raw) for raw in measurement]
    when = timestamp if timestamp is not None else datetime.now(timezone.utc)
    with _local_engine() as engine:
        reading = engine.readings.record_reading(account_id, sensor_id, measurements, when)
    typer.secho(f"Recorded reading at {reading.timestamp}", fg=typer.colors.GREEN)


@app.command("rollup")
def rollup_command(
    account_id: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    timestamp: Optional[int] = typer.Option(None, "--timestamp", help="Any instant inside the hour."),
) -> None:
    """Recompute the hourly min/max rollup from raw readings."""
    when = timestamp if timestamp is not None else datetime.now(timezone.utc)
    with _local_engine() as engine:
        rollup = engine.rollups.rollup_hour(account_id, sensor_id, when, engine.readings)
    if rollup is None:
        typer.echo("No readings in that hour; nothing written.")
        return
    typer.secho(
        f"Rolled up {len(rollup.measurements)} measurement(s) for hour {rollup.timestamp}",
        fg=typer.colors.GREEN,
    )


@app.command("sensor")
def sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(...),
) -> None:
    """Fetch a sensor from the running service."""
    state = _get_state(ctx)
    render_sensor(state.client.get_sensor(sensor_id))


@app.command("update-sensor")
def update_sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    sensor_state: Optional[str] = typer.Option(None, "--state"),
    latitude: Optional[float] = typer.Option(None, "--latitude"),
    longitude: Optional[float] = typer.Option(None, "--longitude"),
    location_enabled: Optional[bool] = typer.Option(None, "--location/--no-location"),
    sample_frequency: Optional[int] = typer.Option(None, "--sample-frequency", min=1),
) -> None:
    """Patch selected fields of a sensor through the running service."""
    changes = {
        key: value
        for key, value in {
            "name": name,
            "state": sensor_state,
            "latitude": latitude,
            "longitude": longitude,
            "location_enabled": location_enabled,
            "sample_frequency": sample_frequency,
        }.items()
        if value is not None
    }
    if not changes:
        raise typer.BadParameter("Pass at least one field to update.")
    state = _get_state(ctx)
    render_sensor(state.client.update_sensor(sensor_id, changes))


@app.command("sensors")
def sensors_command(
    ctx: typer.Context,
    account_id: str = typer.Argument(...),
    sensor_state: Optional[str] = typer.Option(None, "--state"),
) -> None:
    """List an account's sensors."""
    state = _get_state(ctx)
    render_sensors(state.client.list_sensors(account_id, state=sensor_state))


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    account_id: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    start_time: Optional[int] = typer.Option(None, "--start"),
    end_time: Optional[int] = typer.Option(None, "--end"),
) -> None:
    """Show raw readings; without bounds only the current month is returned."""
    state = _get_state(ctx)
    render_readings(state.client.get_readings(account_id, sensor_id, start_time, end_time))


@app.command("hourly")
def hourly_command(
    ctx: typer.Context,
    account_id: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    start_time: Optional[int] = typer.Option(None, "--start"),
    end_time: Optional[int] = typer.Option(None, "--end"),
) -> None:
    """Show hourly min/max rollups."""
    state = _get_state(ctx)
    render_hourly(state.client.get_hourly(account_id, sensor_id, start_time, end_time))


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    account_id: str = typer.Argument(...),
    sensor_state: Optional[str] = typer.Option(None, "--state"),
) -> None:
    """Show the latest reading of every sensor of an account."""
    state = _get_state(ctx)
    render_latest(state.client.get_latest(account_id, state=sensor_state))


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Check that the service can reach its sensors table."""
    state = _get_state(ctx)
    render_health(state.client.healthcheck())
