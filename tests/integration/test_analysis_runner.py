from __future__ import annotations

from datetime import date
from pathlib import Path
from types import MappingProxyType

import geopandas as gpd
import pytest

from district_crashes.common.errors import BoundaryResolutionError, CorridorResolutionError
from district_crashes.common.fs import read_csv_table
from district_crashes.common.models import (
    AnalysisSpec,
    AnalysisWindow,
    BoundarySource,
    BoundingBox,
    InputSources,
    PipelineConfig,
)
from district_crashes.pipeline.analysis import run_analysis, select_boundaries
from district_crashes.pipeline.ingest import build_record_stream
from district_crashes.resolve.boundaries import resolve_district_boundaries
from district_crashes.resolve.overpass_corridors import StaticCorridorResolver

FIXTURES = Path("tests/fixtures/chicago")

CONFIG = PipelineConfig(
    window=AnalysisWindow(start=date(2019, 1, 1), end=date(2024, 12, 31)),
    bbox=BoundingBox(south=41.6445, west=-87.9401, north=42.0230, east=-87.5240),
    inputs=InputSources(
        crashes_path=str(FIXTURES / "traffic_crashes.csv"),
        fatalities_path=str(FIXTURES / "crash_fatalities.csv"),
    ),
    boundaries=(
        BoundarySource(kind="senate", path=str(FIXTURES / "senate_districts.geojson")),
        BoundarySource(kind="house", path=str(FIXTURES / "house_districts.geojson")),
    ),
)


class FailingResolver:
    def resolve(self, bbox, name_filter):
        raise CorridorResolutionError(f"Overpass unavailable for {name_filter}")


@pytest.fixture(scope="module")
def records() -> gpd.GeoDataFrame:
    return build_record_stream(
        read_csv_table(FIXTURES / "traffic_crashes.csv"),
        read_csv_table(FIXTURES / "crash_fatalities.csv"),
        CONFIG,
    )


@pytest.fixture(scope="module")
def boundaries() -> dict[str, gpd.GeoDataFrame]:
    return {source.kind: resolve_district_boundaries(source) for source in CONFIG.boundaries}


@pytest.fixture()
def resolver() -> StaticCorridorResolver:
    return StaticCorridorResolver(gpd.read_file(FIXTURES / "corridors.geojson"), CONFIG.planar_epsg)


def _row(summary, key, value):
    return summary.set_index(key).loc[value]


@pytest.mark.integration
def test_record_stream_from_fixtures(records):
    # c5 sits outside every district but is still geocoded; c6 has no coordinates; c7 and O2 fall outside the window.
    assert sorted(records["crash_record_id"].dropna()) == ["c1", "c2", "c3", "c4", "c5"]
    assert records["fatality_person_id"].dropna().tolist() == ["O1"]


@pytest.mark.integration
def test_districts_analysis(records, boundaries):
    spec = AnalysisSpec(name="all_districts", kind="districts")

    result = run_analysis(spec, CONFIG, records, boundaries)

    senate = result.summaries["senate_district"]
    assert senate["senate_district"].tolist() == ["6", "7"]
    six = _row(senate, "senate_district", "6")
    assert six["total_crashes"] == 3
    assert six["total_fatalities"] == 1
    assert six["total_cyclist_fatalities"] == 1
    assert six["sum_injuries"] == 3
    assert six["crashes_with_injuries"] == 2
    assert six["pedestrian_crashes"] == 1
    assert six["cyclist_crashes"] == 1
    assert six["hit_and_run_crashes"] == 1
    assert six["injuries_in_hit_and_run"] == 2
    assert six["estimated_economic_damages"] == pytest.approx(48_000 + 11_400 + 166_400 + 1_789_400)

    house = result.summaries["house_district"]
    assert house["house_district"].tolist() == ["11", "12", "13"]
    assert _row(house, "house_district", "12")["total_crashes"] == 2

    assert result.totals() == {
        "records": 5,
        "crashes": 4,
        "fatalities": 1,
        "estimated_economic_damages": pytest.approx(48_000 + 11_400 + 166_400 + 11_400 + 1_789_400),
    }
    assert {"senate_districts", "senate_labels", "house_districts", "house_labels", "fatalities"} <= set(result.layers)
    assert "is_in_corridor_buffer" not in result.records.columns
    assert "senate_district" not in records.columns


@pytest.mark.integration
def test_corridor_analysis(records, boundaries, resolver):
    spec = AnalysisSpec(name="lakeshore", kind="corridor", name_filter="Lake Shore", group_by=("senate_district", "all"))

    result = run_analysis(spec, CONFIG, records, boundaries, resolver=resolver)

    assert resolver.calls == [(CONFIG.bbox, "Lake Shore")]
    assert sorted(result.records["crash_record_id"].dropna()) == ["c1", "c2"]
    assert result.records["fatality_person_id"].dropna().tolist() == ["O1"]
    overall = result.summaries["all"].iloc[0]
    assert overall["scope"] == "ALL"
    assert overall["total_crashes"] == 2
    assert overall["total_fatalities"] == 1
    assert overall["estimated_economic_damages"] == pytest.approx(48_000 + 11_400 + 1_789_400)
    assert result.summaries["senate_district"]["senate_district"].tolist() == ["6"]

    assert result.records.crs.to_epsg() == 4326
    assert result.layers["buffer"].crs.to_epsg() == 4326
    assert result.layers["corridor"]["street_name"].tolist() == ["N DuSable Lake Shore Dr"]
    assert result.layers["fatalities"]["fatality_victim"].tolist() == ["CYCLIST"]


@pytest.mark.integration
def test_corridor_analysis_with_wider_buffer_picks_up_more(records, boundaries, resolver):
    narrow = AnalysisSpec(name="narrow", kind="corridor", name_filter="Lake Shore", buffer_distance_ft=10)
    wide = AnalysisSpec(name="wide", kind="corridor", name_filter="Lake Shore", buffer_distance_ft=100)

    narrow_result = run_analysis(narrow, CONFIG, records, boundaries, resolver=resolver)
    wide_result = run_analysis(wide, CONFIG, records, boundaries, resolver=resolver)

    assert set(narrow_result.records["record_key"]) < set(wide_result.records["record_key"])


@pytest.mark.integration
def test_corridor_restricted_to_one_senate_district(records, boundaries, resolver):
    spec = AnalysisSpec(
        name="pulaski_senate_6",
        kind="corridor",
        name_filter="Pulaski",
        district_kinds=("senate",),
        district_filter=MappingProxyType({"senate": ("6",)}),
        group_by=("all",),
    )

    result = run_analysis(spec, CONFIG, records, boundaries, resolver=resolver)

    assert result.records.empty
    assert result.summaries["all"]["total_crashes"].tolist() == [0]
    assert result.layers["senate_districts"]["senate_district"].tolist() == ["6"]


@pytest.mark.integration
def test_zone_analysis(records, boundaries):
    spec = AnalysisSpec(name="ramp", kind="zone", center=(-87.65, 41.90), radius_ft=1700, group_by=("all",))

    result = run_analysis(spec, CONFIG, records, boundaries)

    assert result.records["crash_record_id"].tolist() == ["c3"]
    assert result.summaries["all"]["estimated_economic_damages"].tolist() == [166_400.0]
    assert result.layers["fatalities"].empty


@pytest.mark.integration
def test_corridor_failure_propagates(records, boundaries):
    spec = AnalysisSpec(name="lakeshore", kind="corridor", name_filter="Lake Shore")
    with pytest.raises(CorridorResolutionError):
        run_analysis(spec, CONFIG, records, boundaries, resolver=FailingResolver())


@pytest.mark.integration
def test_district_filter_with_unknown_id_raises(boundaries):
    spec = AnalysisSpec(
        name="lakeshore_senate_99",
        kind="corridor",
        name_filter="Lake Shore",
        district_kinds=("senate",),
        district_filter=MappingProxyType({"senate": ("6", "99")}),
    )
    with pytest.raises(BoundaryResolutionError, match="99"):
        select_boundaries(spec, boundaries)


@pytest.mark.integration
def test_district_filter_keeps_matching_ids(boundaries):
    spec = AnalysisSpec(
        name="senate_6",
        kind="districts",
        district_kinds=("senate",),
        district_filter=MappingProxyType({"senate": ("6.0",)}),
    )
    selected = select_boundaries(spec, boundaries)
    assert selected["senate"]["senate_district"].tolist() == ["6"]
