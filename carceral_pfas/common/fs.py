"""Filesystem helpers for JSON, CSV and vector artifacts."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Iterable, Mapping

import geopandas as gpd
import pandas as pd


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_yaml(path: Path):
    import yaml

    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def write_json(path: Path, payload) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)
        f.write("\n")


def read_json(path: Path):
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def write_csv(path: Path, headers: list[str], rows: Iterable[Mapping[str, object]]) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=headers, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def write_frame_csv(path: Path, frame: pd.DataFrame) -> None:
    ensure_dir(path.parent)
    frame.to_csv(path, index=False)


def read_frame_csv(path: Path) -> pd.DataFrame:
    # Identifier and HUC codes carry leading zeros; keep every column textual
    # and let callers coerce numeric fields explicitly.
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def write_geojson(path: Path, frame: gpd.GeoDataFrame) -> None:
    ensure_dir(path.parent)
    if path.exists():
        path.unlink()
    frame.to_file(path, driver="GeoJSON")


def read_geojson(path: Path) -> gpd.GeoDataFrame:
    return gpd.read_file(path)


def remove_paths(paths: Iterable[Path]) -> int:
    removed = 0
    for path in paths:
        if path.exists():
            path.unlink()
            removed += 1
    return removed
