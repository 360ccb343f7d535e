"""Geometry normalisation: heterogeneous records to points in one CRS."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Iterable, Mapping

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import CRS, Transformer

from carceral_pfas.common.constants import CONUS_ALBERS, ENTITY_ID, WGS84
from carceral_pfas.common.geometry import parse_coordinate
from carceral_pfas.common.logging import get_logger, log_event
from carceral_pfas.common.models import DatasetConfig


@lru_cache(maxsize=32)
def _transformer(source_crs: str, target_crs: str) -> Transformer:
    return Transformer.from_crs(CRS.from_user_input(source_crs), CRS.from_user_input(target_crs), always_xy=True)


def reproject_coordinates(
    xs: Iterable[float],
    ys: Iterable[float],
    source_crs: str,
    target_crs: str,
) -> tuple[np.ndarray, np.ndarray]:
    x = np.asarray(list(xs) if not isinstance(xs, np.ndarray) else xs, dtype=float)
    y = np.asarray(list(ys) if not isinstance(ys, np.ndarray) else ys, dtype=float)
    if CRS.from_user_input(source_crs) == CRS.from_user_input(target_crs):
        return x.copy(), y.copy()
    out_x, out_y = _transformer(str(source_crs), str(target_crs)).transform(x, y)
    return np.asarray(out_x, dtype=float), np.asarray(out_y, dtype=float)


def _id_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float):
        if np.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    text = str(value).strip()
    return text or None


def _finite_in_range(x: np.ndarray, y: np.ndarray, crs: str) -> np.ndarray:
    finite = np.isfinite(x) & np.isfinite(y)
    if CRS.from_user_input(crs).is_geographic:
        finite &= (np.abs(x) <= 180) & (np.abs(y) <= 90)
    return finite


def _points_from_vector(frame: gpd.GeoDataFrame, *, kind: str, target_crs: str, projected_crs: str, default_crs: str | None) -> gpd.GeoDataFrame:
    geometry = frame.geometry
    usable = geometry.notna() & ~geometry.is_empty
    if kind == "point":
        usable &= geometry.geom_type == "Point"
    else:
        usable &= geometry.geom_type.isin(["Polygon", "MultiPolygon"])
    geo = frame.loc[usable]
    if geo.crs is None:
        geo = geo.set_crs(default_crs or target_crs)

    if kind == "point":
        points = geo.geometry.to_crs(target_crs)
    else:
        # Centroids are only meaningful on a planar CRS.
        points = geo.geometry.to_crs(projected_crs).centroid.to_crs(target_crs)

    attributes = pd.DataFrame(geo.drop(columns=geo.geometry.name))
    out = gpd.GeoDataFrame(attributes, geometry=points.values, crs=target_crs)
    keep = _finite_in_range(out.geometry.x.to_numpy(), out.geometry.y.to_numpy(), target_crs)
    return out.loc[keep]


def _crs_per_record(
    frame: pd.DataFrame,
    *,
    datum_field: str | None,
    datum_crs: Mapping[str, str],
    default_crs: str | None,
) -> pd.Series:
    if datum_field is None:
        return pd.Series(default_crs, index=frame.index, dtype=object)
    lookup = {str(key).strip().upper(): value for key, value in datum_crs.items()}
    labels = frame[datum_field].map(lambda v: "" if v is None or (isinstance(v, float) and np.isnan(v)) else str(v).strip().upper())
    return labels.map(lambda label: lookup.get(label, default_crs))


def _points_from_lonlat(
    frame: pd.DataFrame,
    *,
    lon_field: str,
    lat_field: str,
    target_crs: str,
    datum_field: str | None,
    datum_crs: Mapping[str, str],
    default_crs: str | None,
    coordinate_sentinels: Iterable[float],
) -> gpd.GeoDataFrame:
    lons = frame[lon_field].map(parse_coordinate)
    lats = frame[lat_field].map(parse_coordinate)
    usable = lons.notna() & lats.notna()

    sentinels = set(coordinate_sentinels)
    if sentinels:
        usable &= ~(lons.isin(sentinels) | lats.isin(sentinels))

    fallback_crs = default_crs if datum_field else (default_crs or WGS84)
    crs_series = _crs_per_record(frame, datum_field=datum_field, datum_crs=datum_crs, default_crs=fallback_crs)
    usable &= crs_series.notna()

    subset = frame.loc[usable]
    x = lons.loc[usable].astype(float).to_numpy()
    y = lats.loc[usable].astype(float).to_numpy()
    subset_crs = crs_series.loc[usable].to_numpy()

    out_x = np.full(len(subset), np.nan)
    out_y = np.full(len(subset), np.nan)
    # Each datum group is transformed on its own and written back by position.
    for crs in pd.unique(subset_crs):
        positions = np.flatnonzero(subset_crs == crs)
        out_x[positions], out_y[positions] = reproject_coordinates(x[positions], y[positions], crs, target_crs)

    keep = _finite_in_range(out_x, out_y, target_crs)
    out = gpd.GeoDataFrame(
        subset.loc[keep].copy(),
        geometry=gpd.points_from_xy(out_x[keep], out_y[keep]),
        crs=target_crs,
    )
    return out


def normalize_points(
    frame: pd.DataFrame,
    *,
    id_field: str,
    kind: str,
    target_crs: str = WGS84,
    projected_crs: str = CONUS_ALBERS,
    lon_field: str | None = None,
    lat_field: str | None = None,
    datum_field: str | None = None,
    datum_crs: Mapping[str, str] | None = None,
    default_crs: str | None = None,
    coordinate_sentinels: Iterable[float] = (),
) -> gpd.GeoDataFrame:
    """Reduce ``frame`` to one point per record in ``target_crs``.

    ``kind`` is ``"polygon"`` (area centroid computed in ``projected_crs``),
    ``"point"`` (vector points, reprojected) or ``"lonlat"`` (tabular
    coordinates, optionally in several datums selected by ``datum_field``).
    Records without a usable geometry or identifier are dropped, and
    duplicate identifiers keep their first occurrence. Input order is kept.
    """
    if kind in ("polygon", "point"):
        points = _points_from_vector(
            frame,
            kind=kind,
            target_crs=target_crs,
            projected_crs=projected_crs,
            default_crs=default_crs,
        )
    elif kind == "lonlat":
        if lon_field is None or lat_field is None:
            raise ValueError("lon_field and lat_field are required for lonlat records")
        points = _points_from_lonlat(
            frame,
            lon_field=lon_field,
            lat_field=lat_field,
            target_crs=target_crs,
            datum_field=datum_field,
            datum_crs=datum_crs or {},
            default_crs=default_crs,
            coordinate_sentinels=coordinate_sentinels,
        )
    else:
        raise ValueError(f"Unknown geometry kind: {kind}")

    points = points.copy()
    if points.geometry.name != "geometry":
        points = points.rename_geometry("geometry")
    points[ENTITY_ID] = points[id_field].map(_id_text)
    points = points.loc[points[ENTITY_ID].notna()]
    points = points.drop_duplicates(subset=ENTITY_ID, keep="first")
    return points.reset_index(drop=True)


def normalize_dataset(
    frame: pd.DataFrame,
    dataset: DatasetConfig,
    *,
    target_crs: str,
    projected_crs: str,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    points = normalize_points(
        frame,
        id_field=dataset.id_field,
        kind=dataset.geometry,
        target_crs=target_crs,
        projected_crs=projected_crs,
        lon_field=dataset.lon_field,
        lat_field=dataset.lat_field,
        datum_field=dataset.datum_field,
        datum_crs=dataset.datum_crs,
        default_crs=dataset.default_crs,
        coordinate_sentinels=dataset.coordinate_sentinels,
    )
    log_event(
        get_logger(logger),
        f"normalised {dataset.name}",
        source=dataset.name,
        event="NORMALISE",
        rows_in=len(frame),
        rows_out=len(points),
    )
    return points
