from pathlib import Path

import pytest

from carceral_pfas.common.config_loader import load_all_configs, resolve_datasets
from carceral_pfas.common.errors import ConfigError

PIPELINE_YAML = """crs:
  target: "EPSG:4326"
  projected: "EPSG:5070"
watershed:
  path: wbd.geojson
  id_field: huc12
elevation:
  endpoint: "https://epqs.example/v1/json"
  units: Meters
  batch_size: 10
aggregation:
  total_facilities: null
  status_field: STATUS
  closed_status: CLOSED
  population_field: POPULATION
  thresholds: [1]
output:
  summary_filename: summary.csv
  facility_type_filename: by_type.csv
"""

SOURCES_YAML = """target:
  name: prisons
  label: Prison Boundaries
  path: prisons.csv
  format: csv
  id_field: FACILITYID
  lon_field: LON
  lat_field: LAT
sources:
  - name: airports
    label: Part 139 Airports
    path: airports.csv
    format: csv
    id_field: objectid
    lon_field: LON
    lat_field: LAT
  - name: fuds
    label: FUDS
    path: fuds.geojson
    id_field: OBJECTID
"""


def _write_base(base: Path) -> None:
    base.mkdir()
    (base / "pipeline.yml").write_text(PIPELINE_YAML, encoding="utf-8")
    (base / "sources.yml").write_text(SOURCES_YAML, encoding="utf-8")


def test_load_all_configs_from_repo_config_dir():
    bundle = load_all_configs(Path("config"))
    assert bundle.target.name == "prisons"
    assert bundle.target.geometry == "polygon"
    names = [cfg.name for cfg in bundle.sources]
    assert {"airports", "wwtp", "landfills", "military_bases", "brac", "fuds"} <= set(names)
    assert all(cfg.accuracy_field for cfg in bundle.sources if cfg.requires_geocoding_filter)
    assert bundle.pipeline["aggregation"]["thresholds"] == [1]


def test_load_all_configs_builds_dataset_configs(tmp_path: Path):
    base = tmp_path / "base"
    _write_base(base)

    bundle = load_all_configs(base)

    assert bundle.target.geometry == "lonlat"
    assert bundle.dataset("fuds").format == "vector"
    assert bundle.dataset("fuds").geometry == "point"
    assert [cfg.name for cfg in bundle.datasets] == ["prisons", "airports", "fuds"]
    with pytest.raises(ConfigError):
        bundle.dataset("landfills")


def test_resolve_datasets_puts_target_first(tmp_path: Path):
    base = tmp_path / "base"
    _write_base(base)
    bundle = load_all_configs(base)

    assert resolve_datasets(bundle, "all") == ["prisons", "airports", "fuds"]
    assert resolve_datasets(bundle, "fuds") == ["prisons", "fuds"]
    assert resolve_datasets(bundle, "prisons") == ["prisons"]
    assert resolve_datasets(bundle, "all", include_target=False) == ["airports", "fuds"]
    with pytest.raises(ConfigError):
        resolve_datasets(bundle, "nope")


def test_load_all_configs_applies_overlay_values(tmp_path: Path):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base)
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text(
        """elevation:
  batch_size: 3
aggregation:
  total_facilities: 6500
  thresholds: [1, 2]
""",
        encoding="utf-8",
    )

    bundle = load_all_configs(base, overlay_config_dir=overlay)

    assert bundle.pipeline["elevation"]["batch_size"] == 3
    assert bundle.pipeline["elevation"]["units"] == "Meters"
    assert bundle.pipeline["aggregation"]["total_facilities"] == 6500
    assert bundle.pipeline["aggregation"]["thresholds"] == [1, 2]
    assert bundle.pipeline["aggregation"]["status_field"] == "STATUS"


def test_load_all_configs_ignores_empty_overlay_file(tmp_path: Path):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base)
    overlay.mkdir()
    (overlay / "sources.yml").write_text("", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay)

    assert [cfg.name for cfg in bundle.sources] == ["airports", "fuds"]


def test_load_all_configs_rejects_non_mapping_overlay(tmp_path: Path):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base)
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text("- 1\n- 2\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base, overlay_config_dir=overlay)


def test_load_all_configs_requires_files(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_all_configs(tmp_path)
