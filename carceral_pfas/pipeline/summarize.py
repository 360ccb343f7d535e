"""Summarize stage: proximity tables across every linked source type."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from carceral_pfas.common.config_loader import ConfigBundle
from carceral_pfas.common.errors import StageError
from carceral_pfas.common.fs import read_frame_csv, read_geojson
from carceral_pfas.common.logging import get_logger, log_event
from carceral_pfas.pipeline.aggregate import (
    AggregationSettings,
    build_source_summary,
    combine_links,
    summarize_by_facility_type,
)
from carceral_pfas.pipeline.artifacts import enriched_path, links_path
from carceral_pfas.pipeline.export import write_facility_type_table, write_summary_table


def _denominator(bundle: ConfigBundle, data_dir: Path) -> int:
    configured = bundle.pipeline["aggregation"].get("total_facilities")
    if configured:
        return int(configured)
    path = enriched_path(data_dir, bundle.target.name)
    if not path.exists():
        raise StageError("total_facilities is not configured and no enriched target set exists")
    return len(read_geojson(path))


def run_summarize(
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    source_names: list[str],
    logger: logging.Logger | None = None,
) -> dict:
    logger = get_logger(logger)
    aggregation = bundle.pipeline["aggregation"]
    settings = AggregationSettings.from_config(aggregation, denominator=_denominator(bundle, data_dir))

    links_by_label: dict[str, pd.DataFrame] = {}
    missing: list[str] = []
    for name in source_names:
        path = links_path(data_dir, name)
        if not path.exists():
            missing.append(name)
            log_event(logger, f"no links for {name}", source=name, stage="summarize", event="LINKS_MISSING", status="warn")
            continue
        links_by_label[bundle.dataset(name).label] = read_frame_csv(path)
    if not links_by_label:
        raise StageError("No link tables available to summarize")

    rows = build_source_summary(links_by_label, settings, thresholds=list(aggregation["thresholds"]))
    type_rows = summarize_by_facility_type(combine_links(links_by_label), settings)

    output = bundle.pipeline["output"]
    summary_path = write_summary_table(data_dir / "out" / output["summary_filename"], rows)
    type_path = write_facility_type_table(data_dir / "out" / output["facility_type_filename"], type_rows)

    log_event(
        logger,
        "summary tables written",
        run_id=run_id,
        stage="summarize",
        event="SUMMARY_DONE",
        rows_in=sum(len(frame) for frame in links_by_label.values()),
        rows_out=len(rows),
    )
    return {
        "denominator": settings.denominator,
        "summary_path": str(summary_path),
        "facility_type_path": str(type_path),
        "missing_links": missing,
        "rows": [row.to_dict() for row in rows],
        "facility_types": type_rows,
    }
