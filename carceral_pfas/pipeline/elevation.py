"""Batched ground elevation lookup with per-batch checkpoints."""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Protocol, Sequence

import geopandas as gpd

from carceral_pfas.common.constants import ELEVATION, ELEVATION_UNITS, EPQS_NO_DATA
from carceral_pfas.common.errors import ConfigError, ContractError, ElevationBatchError
from carceral_pfas.common.fs import ensure_dir, read_json, remove_paths, write_json
from carceral_pfas.common.http import HttpClient, HttpRequestError, TimeoutConfig
from carceral_pfas.common.logging import get_logger, log_event
from carceral_pfas.common.models import ElevationResult


class ElevationService(Protocol):
    def lookup(self, coords: Sequence[tuple[float, float]], *, crs: str) -> list[ElevationResult]:
        ...


class EpqsElevationService:
    """USGS Elevation Point Query Service client.

    EPQS answers one coordinate per request, so a batch is a run of GETs
    through the shared rate-limited client; the batch either resolves fully
    or raises.
    """

    service_name = "epqs"

    def __init__(
        self,
        http_client: HttpClient,
        *,
        endpoint: str,
        units: str = "Meters",
        wkid: int = 4326,
        timeout: TimeoutConfig | None = None,
    ) -> None:
        self.http_client = http_client
        self.endpoint = endpoint
        self.units = units
        self.wkid = wkid
        self.timeout = timeout

    def _parse_value(self, payload: dict) -> float:
        raw = payload.get("value")
        if raw is None:
            raise HttpRequestError(f"EPQS payload has no value: {payload}")
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise HttpRequestError(f"EPQS returned a non-numeric value: {raw!r}") from exc
        if value <= EPQS_NO_DATA:
            return math.nan
        return value

    def lookup(self, coords: Sequence[tuple[float, float]], *, crs: str) -> list[ElevationResult]:
        results = []
        for x, y in coords:
            payload = self.http_client.get_json(
                self.endpoint,
                service=self.service_name,
                params={
                    "x": x,
                    "y": y,
                    "wkid": self.wkid,
                    "units": self.units,
                    "includeDate": "false",
                },
                timeout=self.timeout,
            )
            results.append(ElevationResult(value=self._parse_value(payload), units=self.units))
        return results


def plan_batches(total: int, batch_size: int) -> list[tuple[int, int]]:
    if batch_size <= 0:
        raise ConfigError("batch_size must be positive")
    return [(start, min(start + batch_size, total)) for start in range(0, total, batch_size)]


def _checkpoint_path(checkpoint_dir: Path, start: int, end: int) -> Path:
    return checkpoint_dir / f"batch_{start:07d}_{end:07d}.json"


def _load_checkpoint(path: Path, coords: Sequence[tuple[float, float]]) -> list[ElevationResult] | None:
    if not path.exists():
        return None
    payload = read_json(path)
    rows = payload.get("results") or []
    # A checkpoint only stands for the exact points it was computed for.
    if payload.get("coords") != [[x, y] for x, y in coords] or len(rows) != len(coords):
        return None
    return [
        ElevationResult(value=math.nan if row["value"] is None else float(row["value"]), units=row["units"])
        for row in rows
    ]


def _write_checkpoint(
    path: Path,
    start: int,
    end: int,
    coords: Sequence[tuple[float, float]],
    results: list[ElevationResult],
) -> None:
    write_json(
        path,
        {
            "batch_start": start,
            "batch_end": end,
            "coords": [[x, y] for x, y in coords],
            "results": [
                {"value": None if math.isnan(r.value) else r.value, "units": r.units}
                for r in results
            ],
        },
    )


def enrich_elevation(
    points: gpd.GeoDataFrame,
    service: ElevationService,
    *,
    batch_size: int,
    crs: str | None = None,
    checkpoint_dir: Path | None = None,
    logger: logging.Logger | None = None,
    source: str | None = None,
) -> gpd.GeoDataFrame:
    """Append ``elevation`` and ``elevation_units`` to ``points``.

    Batches are issued sequentially, one service call each. When
    ``checkpoint_dir`` is set every finished batch is persisted and reused on
    a rerun over the same points, and all checkpoints are removed once the
    full result is assembled. A failing batch raises :class:`ElevationBatchError` naming its
    row range.
    """
    logger = get_logger(logger)
    crs = crs or (points.crs.to_string() if points.crs is not None else "EPSG:4326")
    coords = list(zip(points.geometry.x.tolist(), points.geometry.y.tolist()))
    batches = plan_batches(len(coords), batch_size)

    if checkpoint_dir is not None:
        ensure_dir(checkpoint_dir)

    results_by_start: dict[int, list[ElevationResult]] = {}
    for start, end in batches:
        path = _checkpoint_path(checkpoint_dir, start, end) if checkpoint_dir is not None else None
        cached = _load_checkpoint(path, coords[start:end]) if path is not None else None
        if cached is not None:
            results_by_start[start] = cached
            log_event(logger, "reused elevation checkpoint", source=source, event="ELEVATION_BATCH", status="cached", batch_start=start, batch_end=end)
            continue

        started = time.monotonic()
        try:
            batch = service.lookup(coords[start:end], crs=crs)
        except Exception as exc:
            log_event(
                logger,
                "elevation batch failed",
                level=logging.ERROR,
                source=source,
                event="ELEVATION_BATCH",
                status="error",
                batch_start=start,
                batch_end=end,
                error_code=ElevationBatchError.error_code,
            )
            raise ElevationBatchError(f"Elevation lookup failed: {exc}", batch_start=start, batch_end=end) from exc

        if len(batch) != end - start:
            raise ElevationBatchError(
                f"Elevation service returned {len(batch)} results for {end - start} points",
                batch_start=start,
                batch_end=end,
            )
        if path is not None:
            _write_checkpoint(path, start, end, coords[start:end], batch)
        results_by_start[start] = batch
        log_event(
            logger,
            "elevation batch complete",
            source=source,
            event="ELEVATION_BATCH",
            batch_start=start,
            batch_end=end,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    ordered = [result for start, _end in batches for result in results_by_start[start]]
    if len(ordered) != len(points):
        raise ContractError(f"Elevation results ({len(ordered)}) do not match points ({len(points)})")

    out = points.copy()
    out[ELEVATION] = [r.value for r in ordered]
    out[ELEVATION_UNITS] = [r.units for r in ordered]

    if checkpoint_dir is not None:
        remove_paths(_checkpoint_path(checkpoint_dir, start, end) for start, end in batches)

    missing = int(out[ELEVATION].isna().sum())
    log_event(
        logger,
        "elevation enrichment complete",
        source=source,
        event="ELEVATION_DONE",
        rows_in=len(points),
        rows_out=len(out) - missing,
        status="ok" if missing == 0 else "warn",
    )
    return out
