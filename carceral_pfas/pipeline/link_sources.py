"""Link stage: pair carceral facilities with one point-source type."""

from __future__ import annotations

import logging
from pathlib import Path

from carceral_pfas.common.config_loader import ConfigBundle
from carceral_pfas.common.constants import ENTITY_ID, GEOCODING_ACCURACY_MAX, GEOCODING_CONFIDENT, POPULATION_SENTINEL, TARGET_PREFIX
from carceral_pfas.common.errors import StageError
from carceral_pfas.common.fs import read_geojson, write_frame_csv, write_json
from carceral_pfas.common.logging import get_logger, log_event
from carceral_pfas.common.models import DatasetConfig
from carceral_pfas.pipeline.artifacts import enriched_path, links_path, stage_report_path
from carceral_pfas.pipeline.linker import link_facilities


def _read_enriched(data_dir: Path, name: str):
    path = enriched_path(data_dir, name)
    if not path.exists():
        raise StageError(f"Missing enriched points for {name}; run the prepare stage first")
    return read_geojson(path)


def run_link(
    dataset: DatasetConfig,
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger | None = None,
) -> dict:
    aggregation = bundle.pipeline["aggregation"]
    targets = _read_enriched(data_dir, bundle.target.name)
    sources = _read_enriched(data_dir, dataset.name)

    links = link_facilities(
        targets,
        sources,
        requires_geocoding_filter=dataset.requires_geocoding_filter,
        accuracy_field=dataset.accuracy_field,
        population_field=aggregation["population_field"],
        population_sentinel=int(aggregation.get("population_sentinel", POPULATION_SENTINEL)),
        accuracy_max=float(aggregation.get("accuracy_max", GEOCODING_ACCURACY_MAX)),
        source_type=dataset.name,
    )
    out_path = links_path(data_dir, dataset.name)
    write_frame_csv(out_path, links)

    payload = {
        "dataset": dataset.name,
        "label": dataset.label,
        "run_id": run_id,
        "targets": len(targets),
        "sources": len(sources),
        "links": len(links),
        "linked_facilities": int(links[TARGET_PREFIX + ENTITY_ID].nunique()),
        "confident_links": int(links[GEOCODING_CONFIDENT].astype(bool).sum()),
        "output_path": str(out_path),
    }
    write_json(stage_report_path(data_dir, "link", dataset.name), payload)
    log_event(
        get_logger(logger),
        f"linked {dataset.name}",
        source=dataset.name,
        stage="link",
        event="DATASET_DONE",
        rows_in=len(sources),
        rows_out=len(links),
    )
    return payload
