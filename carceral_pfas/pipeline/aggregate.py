"""Deduplicate linked facilities and compute proximity summary rows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import pandas as pd

from carceral_pfas.common.constants import (
    ENTITY_ID,
    GEOCODING_CONFIDENT,
    POPULATION_SENTINEL,
    SOURCE_PREFIX,
    SOURCE_TYPE,
    TARGET_PREFIX,
)
from carceral_pfas.common.models import AggregateRow
from carceral_pfas.pipeline.linker import normalize_population

TARGET_KEY = TARGET_PREFIX + ENTITY_ID
SOURCE_COUNT = "source_count"
CONFIDENT_COUNT = "confident_count"
COMBINED_LABEL = "All point sources"
TOTAL_LABEL = "Total"

_TRUE_TEXT = {"true", "1", "yes", "t", "y"}


@dataclass(frozen=True)
class AggregationSettings:
    denominator: int
    status_field: str = "STATUS"
    closed_status: str = "CLOSED"
    population_field: str = "POPULATION"
    population_sentinel: int = POPULATION_SENTINEL
    type_field: str = "TYPE"
    juvenile_field: str = "SECURELVL"
    juvenile_value: str = "JUVENILE"

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any], *, denominator: int) -> "AggregationSettings":
        return cls(
            denominator=denominator,
            status_field=cfg.get("status_field", cls.status_field),
            closed_status=cfg.get("closed_status", cls.closed_status),
            population_field=cfg.get("population_field", cls.population_field),
            population_sentinel=int(cfg.get("population_sentinel", cls.population_sentinel)),
            type_field=cfg.get("type_field", cls.type_field),
            juvenile_field=cfg.get("juvenile_field", cls.juvenile_field),
            juvenile_value=cfg.get("juvenile_value", cls.juvenile_value),
        )


def percent_of(count: int, denominator: int | float) -> float:
    if not denominator:
        return 0.0
    return round(count * 100.0 / denominator, 2)


def _as_bool(values: pd.Series) -> pd.Series:
    if values.dtype == bool:
        return values
    return values.map(lambda v: v if isinstance(v, bool) else str(v).strip().lower() in _TRUE_TEXT).astype(bool)


def _population_total(values: pd.Series) -> int:
    total = pd.to_numeric(values, errors="coerce").sum(skipna=True)
    return int(round(float(total)))


def _text(frame: pd.DataFrame, column: str) -> pd.Series:
    if column not in frame.columns:
        return pd.Series("", index=frame.index, dtype=object)
    return frame[column].fillna("").astype(str).str.strip().str.upper()


def deduplicate_targets(links: pd.DataFrame) -> pd.DataFrame:
    """Collapse link records to one row per facility.

    ``source_count`` counts distinct source instances (source type plus
    source id) and ``confident_count`` those flagged geocoding-confident;
    ``geocoding_confident`` is true when any match was.
    """
    target_columns = [c for c in links.columns if c.startswith(TARGET_PREFIX) and c != TARGET_KEY]
    if links.empty:
        return pd.DataFrame(columns=[TARGET_KEY, *target_columns, SOURCE_COUNT, CONFIDENT_COUNT, GEOCODING_CONFIDENT])

    frame = links.copy()
    frame[TARGET_KEY] = frame[TARGET_KEY].astype(str)
    frame[GEOCODING_CONFIDENT] = _as_bool(frame[GEOCODING_CONFIDENT])
    source_type = frame[SOURCE_TYPE].astype(str) if SOURCE_TYPE in frame.columns else ""
    frame["_instance"] = source_type + "|" + frame[SOURCE_PREFIX + ENTITY_ID].astype(str)

    grouped = frame.groupby(TARGET_KEY, sort=False)
    out = grouped[target_columns].first()
    out[SOURCE_COUNT] = grouped["_instance"].nunique()
    confident = frame.loc[frame[GEOCODING_CONFIDENT]].groupby(TARGET_KEY, sort=False)["_instance"].nunique()
    out[CONFIDENT_COUNT] = confident.reindex(out.index).fillna(0).astype(int)
    out[GEOCODING_CONFIDENT] = grouped[GEOCODING_CONFIDENT].any()
    return out.reset_index()


def _summarize(targets: pd.DataFrame, label: str, settings: AggregationSettings) -> AggregateRow:
    if targets.empty:
        return AggregateRow(label=label)

    population = normalize_population(
        targets.get(TARGET_PREFIX + settings.population_field, pd.Series(float("nan"), index=targets.index)),
        settings.population_sentinel,
    )
    active = _text(targets, TARGET_PREFIX + settings.status_field) != settings.closed_status.upper()
    confident = active & _as_bool(targets[GEOCODING_CONFIDENT])
    everything = pd.Series(True, index=targets.index)

    def _metrics(mask: pd.Series) -> tuple[int, float, int]:
        count = int(mask.sum())
        return count, percent_of(count, settings.denominator), _population_total(population[mask])

    facilities, percent, total_population = _metrics(everything)
    active_facilities, active_percent, active_population = _metrics(active)
    confident_facilities, confident_percent, confident_population = _metrics(confident)
    return AggregateRow(
        label=label,
        facilities=facilities,
        percent=percent,
        population=total_population,
        active_facilities=active_facilities,
        active_percent=active_percent,
        active_population=active_population,
        confident_facilities=confident_facilities,
        confident_percent=confident_percent,
        confident_population=confident_population,
    )


def aggregate_one(links: pd.DataFrame, label: str, settings: AggregationSettings) -> AggregateRow:
    return _summarize(deduplicate_targets(links), label, settings)


def aggregate_threshold(links: pd.DataFrame, label: str, threshold: int, settings: AggregationSettings) -> AggregateRow:
    """Like :func:`aggregate_one` for facilities matched by more than ``threshold`` sources.

    A facility only counts as geocoding-confident here when more than
    ``threshold`` of its matching sources are themselves confident.
    """
    targets = deduplicate_targets(links)
    targets = targets.loc[targets[SOURCE_COUNT].astype(int) > threshold].copy()
    targets[GEOCODING_CONFIDENT] = targets[CONFIDENT_COUNT].astype(int) > threshold
    return _summarize(targets, label, settings)


def combine_links(links_by_type: Mapping[str, pd.DataFrame]) -> pd.DataFrame:
    frames = [frame for frame in links_by_type.values() if not frame.empty]
    if not frames:
        return pd.DataFrame(columns=[TARGET_KEY, SOURCE_PREFIX + ENTITY_ID, SOURCE_TYPE, GEOCODING_CONFIDENT])
    return pd.concat(frames, ignore_index=True, sort=False)


def threshold_label(threshold: int) -> str:
    noun = "point source" if threshold == 1 else "point sources"
    return f"More than {threshold} {noun}"


def build_source_summary(
    links_by_type: Mapping[str, pd.DataFrame],
    settings: AggregationSettings,
    *,
    thresholds: list[int],
) -> list[AggregateRow]:
    """One row per source type, a combined row, then one row per threshold.

    ``links_by_type`` maps display label to that source type's link records.
    """
    rows = [aggregate_one(links, label, settings) for label, links in links_by_type.items()]
    combined = combine_links(links_by_type)
    rows.append(aggregate_one(combined, COMBINED_LABEL, settings))
    for threshold in thresholds:
        rows.append(aggregate_threshold(combined, threshold_label(threshold), threshold, settings))
    return rows


def summarize_by_facility_type(links: pd.DataFrame, settings: AggregationSettings) -> list[dict]:
    """Active, geocoding-confident linked facilities grouped by facility type.

    ``percent`` is against all such facilities; ``juvenile_percent`` is
    against the juvenile facilities alone.
    """
    targets = deduplicate_targets(links)
    if not targets.empty:
        active = _text(targets, TARGET_PREFIX + settings.status_field) != settings.closed_status.upper()
        targets = targets.loc[active & _as_bool(targets[GEOCODING_CONFIDENT])]

    facility_type = _text(targets, TARGET_PREFIX + settings.type_field).replace("", "NOT AVAILABLE")
    juvenile = _text(targets, TARGET_PREFIX + settings.juvenile_field) == settings.juvenile_value.upper()
    population = normalize_population(
        targets.get(TARGET_PREFIX + settings.population_field, pd.Series(float("nan"), index=targets.index)),
        settings.population_sentinel,
    )

    total = len(targets)
    total_juvenile = int(juvenile.sum())
    rows = []
    for name in sorted(facility_type.unique()):
        mask = facility_type == name
        count = int(mask.sum())
        juvenile_count = int((mask & juvenile).sum())
        rows.append(
            {
                "facility_type": name,
                "facilities": count,
                "percent": percent_of(count, total),
                "population": _population_total(population[mask]),
                "juvenile_facilities": juvenile_count,
                "juvenile_percent": percent_of(juvenile_count, total_juvenile),
            }
        )
    rows.append(
        {
            "facility_type": TOTAL_LABEL,
            "facilities": total,
            "percent": percent_of(total, total),
            "population": _population_total(population),
            "juvenile_facilities": total_juvenile,
            "juvenile_percent": percent_of(total_juvenile, total_juvenile),
        }
    )
    return rows
