"""Typer CLI entry-point for wxobs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer

from wxobs.config import ENV_API_KEY, ENV_DB_PATH, StoreConfig
from wxobs.errors import WxObsError

app = typer.Typer(name="wxobs", help="Cached hourly weather observation statistics.")


@app.callback()
def _callback() -> None:
    """Cached hourly weather observation statistics."""


def _parse_when(text: str) -> datetime:
    """ISO date or date-time; naive values are UTC."""
    try:
        when = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise typer.BadParameter(f"not an ISO date/time: {text!r}") from exc
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when


def _open_store(api_key: Optional[str], db_path: Optional[Path], verbose: bool):
    from wxobs.store import ObsStore

    cfg = StoreConfig.from_env(api_key=api_key, db_path=db_path, verbose=verbose)
    return ObsStore(cfg)


def _emit(observations, out: Optional[Path], label: str) -> None:
    from wxobs.core.aggregate import to_frame
    from wxobs.storage.io import save_observations

    if not observations:
        typer.echo("No observations in range.")
        return
    frame = to_frame(observations).rename(columns={"value": label})
    typer.echo(frame.to_string(index=False))
    if out is not None:
        p = save_observations(observations, out)
        typer.echo(f"Saved: {p}")


_API_KEY = typer.Option(None, "--api-key", envvar=ENV_API_KEY, help="SynopticLabs API token")
_DB_PATH = typer.Option(None, "--db-path", envvar=ENV_DB_PATH, help="Path to the SQLite cache")
_OUT = typer.Option(None, "--out", help="Write results to .csv or .parquet")
_VERBOSE = typer.Option(False, "--verbose", help="Verbose output")


def _temperature(
    mode: str,
    site: str,
    start: str,
    end: str,
    window_end: int,
    window_length: float,
    api_key: Optional[str],
    db_path: Optional[Path],
    out: Optional[Path],
    verbose: bool,
) -> None:
    try:
        with _open_store(api_key, db_path, verbose) as store:
            query = store.query_max_temperature if mode == "max" else store.query_min_temperature
            obs = query(
                site,
                _parse_when(start),
                _parse_when(end),
                window_end=window_end,
                window_length=window_length,
            )
    except WxObsError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=1)
    _emit(obs, out, f"t{mode}_f")


@app.command("max-temp")
def max_temp(
    site: str = typer.Option(..., "--site", help="Station identifier"),
    start: str = typer.Option(..., help="First window end no earlier than this (ISO)"),
    end: str = typer.Option(..., help="Last window end no later than this (ISO)"),
    window_end: int = typer.Option(0, "--window-end", help="UTC hour (0-24) windows end at"),
    window_length: float = typer.Option(24.0, "--window-length", help="Window length in hours"),
    api_key: Optional[str] = _API_KEY,
    db_path: Optional[Path] = _DB_PATH,
    out: Optional[Path] = _OUT,
    verbose: bool = _VERBOSE,
) -> None:
    """Daily maximum temperature (°F)."""
    _temperature("max", site, start, end, window_end, window_length, api_key, db_path, out, verbose)


@app.command("min-temp")
def min_temp(
    site: str = typer.Option(..., "--site", help="Station identifier"),
    start: str = typer.Option(..., help="First window end no earlier than this (ISO)"),
    end: str = typer.Option(..., help="Last window end no later than this (ISO)"),
    window_end: int = typer.Option(0, "--window-end", help="UTC hour (0-24) windows end at"),
    window_length: float = typer.Option(24.0, "--window-length", help="Window length in hours"),
    api_key: Optional[str] = _API_KEY,
    db_path: Optional[Path] = _DB_PATH,
    out: Optional[Path] = _OUT,
    verbose: bool = _VERBOSE,
) -> None:
    """Daily minimum temperature (°F)."""
    _temperature("min", site, start, end, window_end, window_length, api_key, db_path, out, verbose)


@app.command()
def precip(
    site: str = typer.Option(..., "--site", help="Station identifier"),
    start: str = typer.Option(..., help="First window end no earlier than this (ISO)"),
    end: str = typer.Option(..., help="Last window end no later than this (ISO)"),
    window_length: float = typer.Option(24.0, "--window-length", help="Window length in hours"),
    window_increment: float = typer.Option(
        24.0, "--window-increment", help="Hours between window ends"
    ),
    window_end: int = typer.Option(0, "--window-end", help="UTC hour (0-24) windows align to"),
    api_key: Optional[str] = _API_KEY,
    db_path: Optional[Path] = _DB_PATH,
    out: Optional[Path] = _OUT,
    verbose: bool = _VERBOSE,
) -> None:
    """Accumulated precipitation (in.); 0.001 marks a trace."""
    try:
        with _open_store(api_key, db_path, verbose) as store:
            obs = store.query_precipitation(
                site,
                _parse_when(start),
                _parse_when(end),
                window_length=window_length,
                window_increment=window_increment,
                window_end=window_end,
            )
    except WxObsError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=1)
    _emit(obs, out, "precip_in")


@app.command()
def inventory(
    site: str = typer.Option(..., "--site", help="Station identifier"),
    start: str = typer.Option(..., help="Range start (ISO)"),
    end: str = typer.Option(..., help="Range end (ISO)"),
    db_path: Optional[Path] = _DB_PATH,
    out: Optional[Path] = typer.Option(None, "--out", help="Write the report to JSON"),
    verbose: bool = _VERBOSE,
) -> None:
    """Report cached coverage gaps without downloading."""
    from wxobs.storage.io import save_inventory_json

    try:
        with _open_store(None, db_path, verbose) as store:
            report = store.inventory(site, _parse_when(start), _parse_when(end))
    except WxObsError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=1)

    if report.sufficient:
        typer.echo("Inventory sufficient: no missing ranges.")
    else:
        typer.echo(f"{len(report.missing)} missing range(s):")
        for tr in report.missing:
            typer.echo(f"  {tr}")
        if report.truncated:
            typer.echo("  ... (truncated)")
    if out is not None:
        p = save_inventory_json(site, report, out)
        typer.echo(f"Saved: {p}")


if __name__ == "__main__":
    app()
