"""File I/O: export query results (CSV / Parquet) and inventory reports (JSON)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

from wxobs.core.aggregate import PrecipitationObservation, TemperatureObservation, to_frame
from wxobs.core.inventory import InventoryReport

Observations = Sequence[TemperatureObservation | PrecipitationObservation]


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def save_observations_csv(observations: Observations, path: Path) -> Path:
    _ensure_dir(path.parent)
    to_frame(observations).to_csv(path, index=False)
    return path


def save_observations_parquet(observations: Observations, path: Path) -> Path:
    _ensure_dir(path.parent)
    to_frame(observations).to_parquet(path, index=False, engine="pyarrow")
    return path


def inventory_to_dict(site: str, report: InventoryReport) -> dict[str, Any]:
    return {
        "site": site.lower(),
        "sufficient": report.sufficient,
        "truncated": report.truncated,
        "missing": [
            {"start": tr.start.isoformat(), "end": tr.end.isoformat()} for tr in report.missing
        ],
    }


def save_inventory_json(site: str, report: InventoryReport, path: Path) -> Path:
    _ensure_dir(path.parent)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(inventory_to_dict(site, report), f, indent=2)
    return path


def save_observations(observations: Observations, path: Path) -> Path:
    """Dispatch on suffix: .parquet → Parquet, anything else → CSV."""
    if path.suffix.lower() == ".parquet":
        return save_observations_parquet(observations, path)
    return save_observations_csv(observations, path)
