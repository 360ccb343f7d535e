"""Prepare stage: load, normalise, attribute and elevation-enrich one dataset."""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType

from carceral_pfas.common.config_loader import ConfigBundle
from carceral_pfas.common.constants import ELEVATION, HUC12
from carceral_pfas.common.fs import write_frame_csv, write_geojson, write_json
from carceral_pfas.common.http import HttpClient, RetryConfig, TimeoutConfig
from carceral_pfas.common.logging import get_logger, log_event
from carceral_pfas.common.models import DatasetConfig
from carceral_pfas.pipeline.artifacts import elevation_checkpoint_dir, enriched_path, reports_dir, stage_report_path
from carceral_pfas.pipeline.elevation import ElevationService, EpqsElevationService, enrich_elevation
from carceral_pfas.pipeline.normalize import normalize_dataset
from carceral_pfas.pipeline.watershed import WatershedIndex, find_huc_mismatches, load_watershed_polygons
from carceral_pfas.sources.loaders import dataset_path, load_dataset


class PrepareContext:
    """Run-scoped collaborators shared by every dataset in the prepare stage.

    The watershed index and the HTTP client are built on first use and
    reused read-only; ``close`` releases the HTTP session.
    """

    def __init__(
        self,
        bundle: ConfigBundle,
        data_dir: Path,
        *,
        logger: logging.Logger | None = None,
        watershed_index: WatershedIndex | None = None,
        elevation_service: ElevationService | None = None,
    ) -> None:
        self.bundle = bundle
        self.data_dir = data_dir
        self.logger = get_logger(logger)
        self._watershed_index = watershed_index
        self._elevation_service = elevation_service
        self._http_client: HttpClient | None = None

    @property
    def watershed_index(self) -> WatershedIndex:
        if self._watershed_index is None:
            cfg = self.bundle.pipeline["watershed"]
            path = Path(cfg["path"])
            polygons = load_watershed_polygons(
                path if path.is_absolute() else self.data_dir / path,
                id_field=cfg["id_field"],
                crs=self.bundle.pipeline["crs"]["target"],
                layer=cfg.get("layer"),
                logger=self.logger,
            )
            self._watershed_index = WatershedIndex(polygons)
        return self._watershed_index

    @property
    def elevation_service(self) -> ElevationService:
        if self._elevation_service is None:
            cfg = self.bundle.pipeline["elevation"]
            timeout_cfg = cfg.get("timeout_seconds") or {}
            timeout = TimeoutConfig(
                connect=float(timeout_cfg.get("connect", TimeoutConfig.connect)),
                read=float(timeout_cfg.get("read", TimeoutConfig.read)),
            )
            self._http_client = HttpClient(
                timeout=timeout,
                retry=RetryConfig.from_config(cfg.get("retry")),
                rate_limits={EpqsElevationService.service_name: float(cfg.get("rate_per_sec", 5.0))},
            )
            self._elevation_service = EpqsElevationService(
                self._http_client,
                endpoint=cfg["endpoint"],
                units=cfg["units"],
                wkid=int(cfg.get("wkid", 4326)),
                timeout=timeout,
            )
        return self._elevation_service

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> "PrepareContext":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def run_prepare(dataset: DatasetConfig, context: PrepareContext, run_id: str) -> dict:
    pipeline_cfg = context.bundle.pipeline
    data_dir = context.data_dir

    raw = load_dataset(dataset, data_dir, logger=context.logger)
    points = normalize_dataset(
        raw,
        dataset,
        target_crs=pipeline_cfg["crs"]["target"],
        projected_crs=pipeline_cfg["crs"]["projected"],
        logger=context.logger,
    )
    attributed = context.watershed_index.attribute(points)
    enriched = enrich_elevation(
        attributed,
        context.elevation_service,
        batch_size=int(pipeline_cfg["elevation"]["batch_size"]),
        checkpoint_dir=elevation_checkpoint_dir(data_dir, dataset.name),
        logger=context.logger,
        source=dataset.name,
    )

    out_path = enriched_path(data_dir, dataset.name)
    write_geojson(out_path, enriched)

    mismatch_count = None
    if dataset.reported_huc_field:
        mismatches = find_huc_mismatches(enriched, dataset.reported_huc_field)
        mismatch_count = len(mismatches)
        write_frame_csv(reports_dir(data_dir) / f"huc_mismatches_{dataset.name}.csv", mismatches)

    payload = {
        "dataset": dataset.name,
        "label": dataset.label,
        "run_id": run_id,
        "input_path": str(dataset_path(dataset, data_dir)),
        "rows_loaded": len(raw),
        "points": len(enriched),
        "dropped": len(raw) - len(enriched),
        "unattributed": int((enriched[HUC12] == "").sum()),
        "missing_elevation": int(enriched[ELEVATION].isna().sum()),
        "huc_mismatches": mismatch_count,
        "output_path": str(out_path),
    }
    write_json(stage_report_path(data_dir, "prepare", dataset.name), payload)
    log_event(
        context.logger,
        f"prepared {dataset.name}",
        source=dataset.name,
        stage="prepare",
        event="DATASET_DONE",
        rows_in=len(raw),
        rows_out=len(enriched),
    )
    return payload
