"""Locations of artifacts handed between stages."""

from __future__ import annotations

from pathlib import Path


def enriched_path(data_dir: Path, name: str) -> Path:
    return data_dir / "intermediate" / "enriched" / f"{name}.geojson"


def links_path(data_dir: Path, name: str) -> Path:
    return data_dir / "intermediate" / "links" / f"{name}.csv"


def elevation_checkpoint_dir(data_dir: Path, name: str) -> Path:
    return data_dir / "intermediate" / "elevation" / name


def stage_report_path(data_dir: Path, stage: str, name: str) -> Path:
    return data_dir / "intermediate" / stage / f"{name}.json"


def reports_dir(data_dir: Path) -> Path:
    return data_dir / "out" / "reports"
