"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from carceral_pfas.common.errors import ConfigError

PIPELINE_SECTIONS = {"crs", "watershed", "elevation", "aggregation", "output"}
DATASET_KEYS = {
    "name",
    "label",
    "path",
    "id_field",
    "format",
    "geometry",
    "layer",
    "sheet",
    "lon_field",
    "lat_field",
    "datum_field",
    "datum_crs",
    "default_crs",
    "coordinate_sentinels",
    "requires_geocoding_filter",
    "accuracy_field",
    "reported_huc_field",
    "filters",
    "naics_field",
    "naics_prefixes",
}


def _assert_mapping(obj, ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    _assert_mapping(obj, ctx)
    missing = required - set(obj)
    if missing:
        raise ConfigError(f"Missing keys in {ctx}: {', '.join(sorted(missing))}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        raise ConfigError(f"Unknown keys in {ctx}: {', '.join(sorted(unknown))}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_required_keys(cfg, PIPELINE_SECTIONS, "pipeline config")
    _assert_no_unknown_keys(cfg, PIPELINE_SECTIONS, "pipeline config", allow_unknown)

    _assert_required_keys(cfg["crs"], {"target", "projected"}, "crs")
    _assert_required_keys(cfg["watershed"], {"path", "id_field"}, "watershed")
    _assert_required_keys(cfg["elevation"], {"endpoint", "units", "batch_size"}, "elevation")
    _assert_required_keys(
        cfg["aggregation"],
        {"total_facilities", "status_field", "closed_status", "population_field", "thresholds"},
        "aggregation",
    )
    _assert_required_keys(cfg["output"], {"summary_filename", "facility_type_filename"}, "output")

    batch_size = cfg["elevation"]["batch_size"]
    if not isinstance(batch_size, int) or batch_size <= 0:
        raise ConfigError("elevation.batch_size must be a positive integer")
    thresholds = cfg["aggregation"]["thresholds"]
    if not isinstance(thresholds, list) or any(not isinstance(t, int) or t < 0 for t in thresholds):
        raise ConfigError("aggregation.thresholds must be a list of non-negative integers")
    return cfg


def validate_dataset_entry(entry: dict, ctx: str, *, allow_unknown: bool = False) -> dict:
    _assert_required_keys(entry, {"name", "label", "path", "id_field"}, ctx)
    _assert_no_unknown_keys(entry, DATASET_KEYS, ctx, allow_unknown)
    return entry


def validate_sources_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_required_keys(cfg, {"target", "sources"}, "sources config")
    _assert_no_unknown_keys(cfg, {"target", "sources"}, "sources config", allow_unknown)
    validate_dataset_entry(cfg["target"], "target", allow_unknown=allow_unknown)

    if not isinstance(cfg["sources"], list) or not cfg["sources"]:
        raise ConfigError("sources must be a non-empty list")
    names = [cfg["target"]["name"]]
    for idx, entry in enumerate(cfg["sources"]):
        validate_dataset_entry(entry, f"sources[{idx}]", allow_unknown=allow_unknown)
        names.append(entry["name"])

    dupes = {name for name in names if names.count(name) > 1}
    if dupes:
        raise ConfigError(f"Duplicate dataset names: {', '.join(sorted(dupes))}")

    # Summary rows are keyed by label.
    labels = [entry["label"] for entry in cfg["sources"]]
    dupes = {label for label in labels if labels.count(label) > 1}
    if dupes:
        raise ConfigError(f"Duplicate source labels: {', '.join(sorted(dupes))}")
    return cfg
