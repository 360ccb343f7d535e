"""Join carceral facilities to point sources sharing a HUC-12, downhill only."""

from __future__ import annotations

import pandas as pd

from carceral_pfas.common.constants import (
    ENTITY_ID,
    GEOCODING_ACCURACY_MAX,
    GEOCODING_CONFIDENT,
    HUC12,
    POPULATION_SENTINEL,
    SOURCE_PREFIX,
    SOURCE_TYPE,
    TARGET_PREFIX,
)
from carceral_pfas.common.errors import ContractError


def _attributes(frame: pd.DataFrame, prefix: str) -> pd.DataFrame:
    table = pd.DataFrame(frame.drop(columns=[c for c in ("geometry",) if c in frame.columns]))
    for column in (ENTITY_ID, HUC12):
        if column not in table.columns:
            raise ContractError(f"Link input is missing '{column}'")
    table[ENTITY_ID] = table[ENTITY_ID].astype(str)
    table[HUC12] = table[HUC12].fillna("").astype(str).str.strip()
    table = table.loc[table[HUC12] != ""]
    return table.add_prefix(prefix)


def normalize_population(values: pd.Series, sentinel: int = POPULATION_SENTINEL) -> pd.Series:
    """Numeric population with the "unknown" sentinel turned into ``NA``."""
    numeric = pd.to_numeric(values, errors="coerce").astype("Float64")
    return numeric.mask(numeric.eq(sentinel).fillna(False))


def geocoding_flags(scores: pd.Series, accuracy_max: float = GEOCODING_ACCURACY_MAX) -> pd.Series:
    """True where the accuracy score is known and within ``accuracy_max``; lower is better."""
    numeric = pd.to_numeric(scores, errors="coerce")
    return (numeric <= accuracy_max).astype(bool)


def link_facilities(
    targets: pd.DataFrame,
    sources: pd.DataFrame,
    *,
    requires_geocoding_filter: bool,
    target_elevation_field: str = "elevation",
    source_elevation_field: str = "elevation",
    accuracy_field: str | None = None,
    population_field: str = "POPULATION",
    population_sentinel: int = POPULATION_SENTINEL,
    accuracy_max: float = GEOCODING_ACCURACY_MAX,
    source_type: str = "",
) -> pd.DataFrame:
    """One row per (facility, source instance) in the same HUC-12 with the facility lower.

    Columns are the facility's attributes prefixed ``target_`` and the
    source's prefixed ``source_``, plus ``source_type`` and
    ``geocoding_confident``. Facilities matching several source instances
    appear once per instance.
    """
    if requires_geocoding_filter and accuracy_field is None:
        raise ValueError("accuracy_field is required when filtering on geocoding accuracy")

    left = _attributes(targets, TARGET_PREFIX)
    right = _attributes(sources, SOURCE_PREFIX)
    target_elevation = TARGET_PREFIX + target_elevation_field
    source_elevation = SOURCE_PREFIX + source_elevation_field
    for column, table in ((target_elevation, left), (source_elevation, right)):
        if column not in table.columns:
            raise ContractError(f"Link input is missing '{column}'")

    joined = left.merge(
        right,
        how="inner",
        left_on=TARGET_PREFIX + HUC12,
        right_on=SOURCE_PREFIX + HUC12,
        sort=False,
    )
    lower = pd.to_numeric(joined[target_elevation], errors="coerce") < pd.to_numeric(joined[source_elevation], errors="coerce")
    links = joined.loc[lower].reset_index(drop=True)

    target_population = TARGET_PREFIX + population_field
    if target_population in links.columns:
        links[target_population] = normalize_population(links[target_population], population_sentinel)

    if requires_geocoding_filter:
        accuracy_column = SOURCE_PREFIX + accuracy_field
        if accuracy_column not in links.columns:
            raise ContractError(f"Source is missing accuracy field '{accuracy_field}'")
        links[GEOCODING_CONFIDENT] = geocoding_flags(links[accuracy_column], accuracy_max)
    else:
        # Source types without accuracy scoring are never excluded on that basis.
        links[GEOCODING_CONFIDENT] = True
    links[SOURCE_TYPE] = source_type
    return links
