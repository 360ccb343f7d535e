"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from carceral_pfas.common.errors import ConfigError
from carceral_pfas.common.fs import read_yaml
from carceral_pfas.common.models import DatasetConfig
from carceral_pfas.common.schema import validate_pipeline_config, validate_sources_config


@dataclass(frozen=True)
class ConfigBundle:
    pipeline: dict
    target: DatasetConfig
    sources: list[DatasetConfig]

    @property
    def datasets(self) -> list[DatasetConfig]:
        return [self.target, *self.sources]

    def dataset(self, name: str) -> DatasetConfig:
        for cfg in self.datasets:
            if cfg.name == name:
                return cfg
        raise ConfigError(f"Unknown dataset: {name}")


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            merged[key] = _deep_merge(merged[key], value) if key in merged else value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return overlay_config_dir / name if overlay_config_dir is not None else None

    pipeline = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / "pipeline.yml", _overlay("pipeline.yml")),
        allow_unknown=allow_unknown,
    )
    sources_cfg = validate_sources_config(
        _load_yaml_with_overlay(config_dir / "sources.yml", _overlay("sources.yml")),
        allow_unknown=allow_unknown,
    )
    return ConfigBundle(
        pipeline=pipeline,
        target=DatasetConfig.from_dict(sources_cfg["target"]),
        sources=[DatasetConfig.from_dict(entry) for entry in sources_cfg["sources"]],
    )


def resolve_datasets(bundle: ConfigBundle, selector: str, *, include_target: bool = True) -> list[str]:
    """Names of the datasets a stage should visit, target first."""
    if selector == "all":
        names = [cfg.name for cfg in bundle.sources]
    else:
        bundle.dataset(selector)
        names = [] if selector == bundle.target.name else [selector]
    if include_target:
        return [bundle.target.name, *names]
    return names
