"""Summary table CSV export."""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path

from carceral_pfas.common.fs import write_csv
from carceral_pfas.common.models import AggregateRow

SUMMARY_HEADERS = [f.name for f in fields(AggregateRow)]
FACILITY_TYPE_HEADERS = [
    "facility_type",
    "facilities",
    "percent",
    "population",
    "juvenile_facilities",
    "juvenile_percent",
]


def _serialize_row(row: dict, headers: list[str]) -> dict:
    out = {}
    for key in headers:
        value = row.get(key)
        if value is None:
            out[key] = ""
        elif isinstance(value, float):
            out[key] = f"{value:.2f}"
        else:
            out[key] = value
    return out


def write_summary_table(path: Path, rows: list[AggregateRow]) -> Path:
    write_csv(path, SUMMARY_HEADERS, [_serialize_row(row.to_dict(), SUMMARY_HEADERS) for row in rows])
    return path


def write_facility_type_table(path: Path, rows: list[dict]) -> Path:
    write_csv(path, FACILITY_TYPE_HEADERS, [_serialize_row(row, FACILITY_TYPE_HEADERS) for row in rows])
    return path
