"""Raw dataset loading and row filtering ahead of normalisation."""

from __future__ import annotations

import logging
from pathlib import Path

import geopandas as gpd
import pandas as pd

from carceral_pfas.common.errors import StageError
from carceral_pfas.common.logging import get_logger, log_event
from carceral_pfas.common.models import DatasetConfig


def dataset_path(dataset: DatasetConfig, data_dir: Path) -> Path:
    path = Path(dataset.path)
    return path if path.is_absolute() else data_dir / path


def _read_raw(dataset: DatasetConfig, path: Path) -> pd.DataFrame:
    if dataset.format == "vector":
        if dataset.layer:
            return gpd.read_file(path, layer=dataset.layer)
        return gpd.read_file(path)
    if dataset.format == "csv":
        # Registry ids and codes keep their leading zeros as text.
        return pd.read_csv(path, dtype=str, keep_default_na=False, encoding_errors="replace")
    if dataset.format == "excel":
        return pd.read_excel(path, sheet_name=dataset.sheet if dataset.sheet is not None else 0, dtype=str)
    raise StageError(f"Unsupported format '{dataset.format}' for {dataset.name}")


def _apply_filters(frame: pd.DataFrame, dataset: DatasetConfig) -> pd.DataFrame:
    for column, allowed in dataset.filters.items():
        if column not in frame.columns:
            raise StageError(f"Filter column '{column}' missing from {dataset.name}")
        values = {str(value).strip() for value in allowed}
        frame = frame.loc[frame[column].astype(str).str.strip().isin(values)]

    if dataset.naics_prefixes:
        if not dataset.naics_field or dataset.naics_field not in frame.columns:
            raise StageError(f"NAICS field '{dataset.naics_field}' missing from {dataset.name}")
        codes = frame[dataset.naics_field].astype(str).str.strip()
        frame = frame.loc[codes.str.startswith(dataset.naics_prefixes)]
    return frame


def load_dataset(dataset: DatasetConfig, data_dir: Path, logger: logging.Logger | None = None) -> pd.DataFrame:
    path = dataset_path(dataset, data_dir)
    if not path.exists():
        raise StageError(f"Missing input for {dataset.name}: {path}")

    raw = _read_raw(dataset, path)
    if dataset.id_field not in raw.columns:
        raise StageError(f"Join key '{dataset.id_field}' missing from {dataset.name}")

    frame = _apply_filters(raw, dataset)
    log_event(
        get_logger(logger),
        f"loaded {dataset.name}",
        source=dataset.name,
        event="LOAD",
        rows_in=len(raw),
        rows_out=len(frame),
    )
    return frame
