"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from carceral_pfas.common.errors import ConfigError

GEOMETRY_KINDS = ("polygon", "point", "lonlat")
DATASET_FORMATS = ("vector", "csv", "excel")


@dataclass(frozen=True)
class DatasetConfig:
    """One entry of ``sources.yml``: how to load and label a dataset."""

    name: str
    label: str
    path: str
    id_field: str
    format: str = "vector"
    geometry: str = "point"
    layer: str | None = None
    sheet: str | int | None = None
    lon_field: str | None = None
    lat_field: str | None = None
    datum_field: str | None = None
    datum_crs: dict[str, str] = field(default_factory=dict)
    default_crs: str | None = None
    coordinate_sentinels: tuple[float, ...] = ()
    requires_geocoding_filter: bool = False
    accuracy_field: str | None = None
    reported_huc_field: str | None = None
    filters: dict[str, list[Any]] = field(default_factory=dict)
    naics_field: str | None = None
    naics_prefixes: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> "DatasetConfig":
        fmt = cfg.get("format", "vector")
        if fmt not in DATASET_FORMATS:
            raise ConfigError(f"Unsupported format '{fmt}' for dataset {cfg.get('name')}")
        geometry = cfg.get("geometry", "lonlat" if fmt in ("csv", "excel") else "point")
        if geometry not in GEOMETRY_KINDS:
            raise ConfigError(f"Unsupported geometry kind '{geometry}' for dataset {cfg.get('name')}")
        if geometry == "lonlat" and not (cfg.get("lon_field") and cfg.get("lat_field")):
            raise ConfigError(f"Dataset {cfg.get('name')} needs lon_field and lat_field")
        if cfg.get("requires_geocoding_filter") and not cfg.get("accuracy_field"):
            raise ConfigError(f"Dataset {cfg.get('name')} filters on geocoding but has no accuracy_field")
        return cls(
            name=cfg["name"],
            label=cfg["label"],
            path=cfg["path"],
            id_field=cfg["id_field"],
            format=fmt,
            geometry=geometry,
            layer=cfg.get("layer"),
            sheet=cfg.get("sheet"),
            lon_field=cfg.get("lon_field"),
            lat_field=cfg.get("lat_field"),
            datum_field=cfg.get("datum_field"),
            datum_crs=dict(cfg.get("datum_crs") or {}),
            default_crs=cfg.get("default_crs"),
            coordinate_sentinels=tuple(float(v) for v in cfg.get("coordinate_sentinels") or ()),
            requires_geocoding_filter=bool(cfg.get("requires_geocoding_filter", False)),
            accuracy_field=cfg.get("accuracy_field"),
            reported_huc_field=cfg.get("reported_huc_field"),
            filters={key: list(values) for key, values in (cfg.get("filters") or {}).items()},
            naics_field=cfg.get("naics_field"),
            naics_prefixes=tuple(str(v) for v in cfg.get("naics_prefixes") or ()),
        )


@dataclass(frozen=True)
class ElevationResult:
    value: float
    units: str


@dataclass(frozen=True)
class AggregateRow:
    label: str
    facilities: int = 0
    percent: float = 0.0
    population: int = 0
    active_facilities: int = 0
    active_percent: float = 0.0
    active_population: int = 0
    confident_facilities: int = 0
    confident_percent: float = 0.0
    confident_population: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
