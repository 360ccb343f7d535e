"""HUC-12 watershed attribution backed by an STRtree over repaired polygons."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely import STRtree
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from carceral_pfas.common.constants import ENTITY_ID, HUC12
from carceral_pfas.common.errors import StageError
from carceral_pfas.common.logging import get_logger, log_event

UNATTRIBUTED = ""


def _huc_text(value: Any) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return UNATTRIBUTED
    text = str(value).strip()
    if text.endswith(".0"):
        text = text[:-2]
    if text.isdigit() and len(text) < 12:
        # Numeric readers drop the leading zero of regions 01-09.
        text = text.zfill(12)
    return text


def _polygonal_part(geom: BaseGeometry | None) -> BaseGeometry | None:
    if geom is None or geom.is_empty:
        return None
    if isinstance(geom, (Polygon, MultiPolygon)):
        return geom
    if isinstance(geom, GeometryCollection):
        parts: list[Polygon] = []
        for part in geom.geoms:
            if isinstance(part, Polygon):
                parts.append(part)
            elif isinstance(part, MultiPolygon):
                parts.extend(part.geoms)
        if parts:
            return MultiPolygon(parts)
    return None


def repair_polygons(polygons: gpd.GeoDataFrame, logger: logging.Logger | None = None) -> gpd.GeoDataFrame:
    """Make every polygon valid once, dropping those that cannot be repaired.

    The surviving rows keep their relative order; that order is the
    enumeration order used to break ties between overlapping watersheds.
    """
    geoms = polygons.geometry
    present = geoms.notna() & ~geoms.is_empty
    invalid = present & ~geoms.is_valid

    repaired = geoms.copy()
    if invalid.any():
        repaired.loc[invalid] = geoms.loc[invalid].make_valid()
    repaired = gpd.GeoSeries(repaired.map(_polygonal_part), index=polygons.index, crs=polygons.crs)
    usable = repaired.notna() & ~repaired.is_empty & repaired.is_valid

    out = polygons.copy()
    out[out.geometry.name] = repaired
    out = out.loc[usable].reset_index(drop=True)

    log_event(
        get_logger(logger),
        "repaired watershed polygons",
        event="WATERSHED_REPAIR",
        rows_in=len(polygons),
        rows_out=len(out),
        status="ok" if len(out) == len(polygons) else "warn",
    )
    return out


def load_watershed_polygons(
    path: Path,
    *,
    id_field: str,
    crs: str,
    layer: str | None = None,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    if not path.exists():
        raise StageError(f"Missing watershed boundary dataset: {path}")
    raw = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    if id_field not in raw.columns:
        raise StageError(f"Watershed dataset has no '{id_field}' column")

    polygons = gpd.GeoDataFrame(
        {HUC12: raw[id_field].map(_huc_text)},
        geometry=raw.geometry.values,
        crs=raw.crs,
    )
    if polygons.crs is None:
        polygons = polygons.set_crs(crs)
    polygons = polygons.to_crs(crs)
    return repair_polygons(polygons, logger=logger)


class WatershedIndex:
    """Read-only spatial index over watershed polygons.

    Built once per run and shared by every dataset that is attributed.
    """

    def __init__(self, polygons: gpd.GeoDataFrame, *, id_field: str = HUC12) -> None:
        self.polygons = polygons.reset_index(drop=True)
        self.crs = self.polygons.crs
        self._ids = self.polygons[id_field].map(_huc_text).to_numpy(dtype=object)
        self._tree = STRtree(self.polygons.geometry.to_numpy())

    def __len__(self) -> int:
        return len(self.polygons)

    def lookup(self, geometries: np.ndarray) -> np.ndarray:
        result = np.full(len(geometries), UNATTRIBUTED, dtype=object)
        if len(geometries) == 0 or len(self.polygons) == 0:
            return result

        input_idx, tree_idx = self._tree.query(geometries, predicate="intersects")
        if input_idx.size == 0:
            return result

        # Lowest polygon index wins for points covered by several watersheds.
        order = np.lexsort((tree_idx, input_idx))
        input_sorted = input_idx[order]
        tree_sorted = tree_idx[order]
        _, first = np.unique(input_sorted, return_index=True)
        result[input_sorted[first]] = self._ids[tree_sorted[first]]
        return result

    def attribute(self, points: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
        geoms = points.geometry
        if self.crs is not None and points.crs is not None and points.crs != self.crs:
            geoms = geoms.to_crs(self.crs)
        out = points.copy()
        out[HUC12] = self.lookup(geoms.to_numpy())
        return out


def find_huc_mismatches(points: pd.DataFrame, reported_field: str) -> pd.DataFrame:
    """Rows whose independently reported HUC code is not a prefix of the derived HUC-12."""
    columns = [ENTITY_ID, reported_field, HUC12]
    if reported_field not in points.columns:
        return pd.DataFrame(columns=columns)

    reported = points[reported_field].map(
        lambda v: "" if v is None or (isinstance(v, float) and np.isnan(v)) else str(v).strip().removesuffix(".0")
    )
    derived = points[HUC12].fillna(UNATTRIBUTED).astype(str)
    has_report = reported != ""
    # An odd-length report lost its leading zero to a numeric reader.
    agrees = pd.Series(
        [d.startswith(r.zfill(len(r) + len(r) % 2)) for r, d in zip(reported, derived)],
        index=points.index,
        dtype=bool,
    )
    mismatched = points.loc[has_report & ~agrees, columns].copy()
    mismatched[reported_field] = reported.loc[mismatched.index]
    return mismatched.reset_index(drop=True)
