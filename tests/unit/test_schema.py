import copy

import pytest

from carceral_pfas.common.errors import ConfigError
from carceral_pfas.common.models import DatasetConfig
from carceral_pfas.common.schema import validate_pipeline_config, validate_sources_config

PIPELINE = {
    "crs": {"target": "EPSG:4326", "projected": "EPSG:5070"},
    "watershed": {"path": "wbd.gdb", "id_field": "huc12"},
    "elevation": {"endpoint": "https://epqs.example", "units": "Meters", "batch_size": 100},
    "aggregation": {
        "total_facilities": None,
        "status_field": "STATUS",
        "closed_status": "CLOSED",
        "population_field": "POPULATION",
        "thresholds": [1],
    },
    "output": {"summary_filename": "s.csv", "facility_type_filename": "t.csv"},
}

SOURCES = {
    "target": {"name": "prisons", "label": "Prisons", "path": "p.geojson", "id_field": "FACILITYID"},
    "sources": [{"name": "airports", "label": "Airports", "path": "a.geojson", "id_field": "objectid"}],
}


def test_pipeline_schema_accepts_valid_config():
    assert validate_pipeline_config(copy.deepcopy(PIPELINE))["crs"]["projected"] == "EPSG:5070"


def test_pipeline_schema_rejects_unknown_section():
    cfg = copy.deepcopy(PIPELINE)
    cfg["extra"] = {}
    with pytest.raises(ConfigError):
        validate_pipeline_config(cfg)
    assert validate_pipeline_config(cfg, allow_unknown=True) is cfg


def test_pipeline_schema_requires_elevation_keys():
    cfg = copy.deepcopy(PIPELINE)
    del cfg["elevation"]["endpoint"]
    with pytest.raises(ConfigError, match="endpoint"):
        validate_pipeline_config(cfg)


@pytest.mark.parametrize("batch_size", [0, -5, "10", 2.5])
def test_pipeline_schema_rejects_bad_batch_size(batch_size):
    cfg = copy.deepcopy(PIPELINE)
    cfg["elevation"]["batch_size"] = batch_size
    with pytest.raises(ConfigError):
        validate_pipeline_config(cfg)


@pytest.mark.parametrize("thresholds", [1, [-1], ["2"]])
def test_pipeline_schema_rejects_bad_thresholds(thresholds):
    cfg = copy.deepcopy(PIPELINE)
    cfg["aggregation"]["thresholds"] = thresholds
    with pytest.raises(ConfigError):
        validate_pipeline_config(cfg)


def test_sources_schema_rejects_duplicate_names():
    cfg = copy.deepcopy(SOURCES)
    cfg["sources"].append(dict(cfg["sources"][0]))
    with pytest.raises(ConfigError, match="airports"):
        validate_sources_config(cfg)


def test_sources_schema_rejects_empty_source_list():
    cfg = copy.deepcopy(SOURCES)
    cfg["sources"] = []
    with pytest.raises(ConfigError):
        validate_sources_config(cfg)


def test_sources_schema_rejects_unknown_dataset_key():
    cfg = copy.deepcopy(SOURCES)
    cfg["sources"][0]["join_key"] = "objectid"
    with pytest.raises(ConfigError, match="join_key"):
        validate_sources_config(cfg)


def test_sources_schema_requires_dataset_keys():
    cfg = copy.deepcopy(SOURCES)
    del cfg["target"]["id_field"]
    with pytest.raises(ConfigError):
        validate_sources_config(cfg)


@pytest.mark.parametrize(
    "entry",
    [
        {"format": "parquet"},
        {"geometry": "line"},
        {"format": "csv"},
        {"requires_geocoding_filter": True},
    ],
)
def test_dataset_config_rejects_inconsistent_entries(entry):
    base = {"name": "x", "label": "X", "path": "x.csv", "id_field": "id"}
    with pytest.raises(ConfigError):
        DatasetConfig.from_dict({**base, **entry})


def test_dataset_config_defaults():
    cfg = DatasetConfig.from_dict(
        {
            "name": "naics_chemical",
            "label": "Chemical Manufacturing",
            "path": "frs.csv",
            "format": "csv",
            "id_field": "REGISTRY_ID",
            "lon_field": "LONGITUDE83",
            "lat_field": "LATITUDE83",
            "coordinate_sentinels": [0],
            "naics_prefixes": [325],
            "requires_geocoding_filter": True,
            "accuracy_field": "ACCURACY_VALUE",
        }
    )
    assert cfg.geometry == "lonlat"
    assert cfg.coordinate_sentinels == (0.0,)
    assert cfg.naics_prefixes == ("325",)
    assert cfg.filters == {}


def test_sources_schema_rejects_duplicate_labels():
    cfg = copy.deepcopy(SOURCES)
    cfg["sources"].append({"name": "heliports", "label": "Airports", "path": "h.geojson", "id_field": "objectid"})
    with pytest.raises(ConfigError, match="Duplicate source labels: Airports"):
        validate_sources_config(cfg)
