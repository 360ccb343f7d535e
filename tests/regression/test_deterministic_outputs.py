from pathlib import Path

import geopandas as gpd
import pytest
from shapely.geometry import box

from carceral_pfas.cli import parse_args, run_command
from carceral_pfas.common.models import ElevationResult
from carceral_pfas.pipeline.watershed import WatershedIndex


class SlopeElevationService:
    """Elevation rises to the east."""

    def lookup(self, coords, *, crs):
        return [ElevationResult(value=round((x + 90.0) * 100.0, 3), units="Meters") for x, _y in coords]


def _write_inputs(root: Path) -> Path:
    config_dir = root / "config"
    config_dir.mkdir(parents=True)
    (config_dir / "pipeline.yml").write_text(
        Path("config/pipeline.yml").read_text(encoding="utf-8").replace("batch_size: 250", "batch_size: 2"),
        encoding="utf-8",
    )
    (config_dir / "sources.yml").write_text(
        """target:
  name: prisons
  label: Prison Boundaries
  path: prisons.csv
  format: csv
  id_field: FACILITYID
  lon_field: LON
  lat_field: LAT
sources:
  - name: landfills
    label: Landfills
    path: landfills.csv
    format: csv
    id_field: LANDFILL_ID
    lon_field: Longitude
    lat_field: Latitude
""",
        encoding="utf-8",
    )
    return config_dir


def _run_once(root: Path, run_id: str) -> Path:
    config_dir = _write_inputs(root)
    data_dir = root / "data"
    data_dir.mkdir()
    (data_dir / "prisons.csv").write_text(
        "FACILITYID,LON,LAT,STATUS,POPULATION,TYPE,SECURELVL\n"
        "F1,-84.9,33.5,OPEN,1200,STATE,MEDIUM\n"
        "F2,-84.8,33.5,OPEN,-999,COUNTY,JUVENILE\n"
        "F3,-83.5,33.5,CLOSED,300,FEDERAL,MINIMUM\n",
        encoding="utf-8",
    )
    (data_dir / "landfills.csv").write_text(
        "LANDFILL_ID,Longitude,Latitude\n"
        "L1,84.2W,33.5N\n"
        "L2,-83.1,33.5\n",
        encoding="utf-8",
    )
    polygons = gpd.GeoDataFrame(
        {"huc12": ["031300010101", "031300010102"]},
        geometry=[box(-85, 33, -84, 34), box(-84, 33, -83, 34)],
        crs="EPSG:4326",
    )
    args = parse_args(
        [
            "all",
            "--config-dir",
            str(config_dir),
            "--data-dir",
            str(data_dir),
            "--run-date",
            "2026-02-17",
            "--run-id",
            run_id,
        ]
    )
    assert run_command(args, watershed_index=WatershedIndex(polygons), elevation_service=SlopeElevationService()) == 0
    return data_dir


@pytest.mark.regression
def test_summary_tables_are_byte_stable_for_same_inputs(tmp_path: Path):
    first = _run_once(tmp_path / "first", "run-a")
    second = _run_once(tmp_path / "second", "run-b")

    for name in ("pfas_proximity_summary.csv", "pfas_proximity_by_facility_type.csv"):
        assert (first / "out" / name).read_bytes() == (second / "out" / name).read_bytes()
    assert (first / "intermediate" / "links" / "landfills.csv").read_bytes() == (
        second / "intermediate" / "links" / "landfills.csv"
    ).read_bytes()

    summary = (first / "out" / "pfas_proximity_summary.csv").read_text(encoding="utf-8").splitlines()
    assert summary[1].startswith("Landfills,3,100.00,1500,2,66.67,1200,2,66.67,1200")
