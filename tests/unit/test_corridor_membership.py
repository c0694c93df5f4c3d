import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point

from district_crashes.common.errors import FrameMismatchError
from district_crashes.common.geometry import GEOGRAPHIC_CRS, to_planar
from district_crashes.pipeline.corridor_membership import (
    MEMBERSHIP_COLUMN,
    build_corridor_buffer,
    build_zone_buffer,
    buffer_for_presentation,
    classify_membership,
    filter_members,
)

PLANAR = "EPSG:26971"
HUNDRED_FEET_M = 100 * 0.3048


def _lines(*coords) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"street_name": [f"Segment {i}" for i in range(len(coords))]},
        geometry=[LineString(c) for c in coords],
        crs=PLANAR,
    )


def _records(*points) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"record_key": list(range(len(points)))},
        geometry=[Point(p) for p in points],
        crs=PLANAR,
    )


def test_point_on_centerline_is_inside():
    buffer = build_corridor_buffer(_lines([(350000, 580000), (350200, 580000)]), HUNDRED_FEET_M)
    out = classify_membership(_records((350100, 580000)), buffer)
    assert out[MEMBERSHIP_COLUMN].tolist() == [True]


def test_point_31m_from_centerline_is_outside():
    buffer = build_corridor_buffer(_lines([(350000, 580000), (350200, 580000)]), HUNDRED_FEET_M)
    out = classify_membership(_records((350100, 580031)), buffer)
    assert out[MEMBERSHIP_COLUMN].tolist() == [False]


def test_point_on_buffer_edge_counts_as_inside():
    buffer = build_corridor_buffer(_lines([(0, 0), (100, 0)]), 10)
    out = classify_membership(_records((50, 10), (50, 10.001)), buffer)
    assert out[MEMBERSHIP_COLUMN].tolist() == [True, False]


def test_disjoint_segments_are_all_buffered():
    lines = _lines([(350000, 580000), (350100, 580000)], [(360000, 590000), (360100, 590000)])
    buffer = build_corridor_buffer(lines, HUNDRED_FEET_M)
    out = classify_membership(_records((350050, 580010), (360050, 590010), (355000, 585000)), buffer)

    assert len(buffer) == 1
    assert out[MEMBERSHIP_COLUMN].tolist() == [True, True, False]


def test_classification_copies_input():
    records = _records((350100, 580000))
    buffer = build_corridor_buffer(_lines([(350000, 580000), (350200, 580000)]), HUNDRED_FEET_M)
    classify_membership(records, buffer)
    assert MEMBERSHIP_COLUMN not in records.columns


def test_empty_corridor_classifies_nothing_inside():
    empty_lines = _lines([(0, 0), (1, 1)]).iloc[0:0]
    buffer = build_corridor_buffer(empty_lines, HUNDRED_FEET_M)
    out = classify_membership(_records((0, 0)), buffer)

    assert buffer.empty
    assert out[MEMBERSHIP_COLUMN].tolist() == [False]
    assert filter_members(out).empty


def test_buffering_requires_planar_lines():
    geographic = gpd.GeoDataFrame(geometry=[LineString([(-87.6, 41.9), (-87.6, 41.91)])], crs=GEOGRAPHIC_CRS)
    with pytest.raises(FrameMismatchError):
        build_corridor_buffer(geographic, HUNDRED_FEET_M)


def test_classification_requires_shared_frame():
    buffer = build_corridor_buffer(_lines([(350000, 580000), (350200, 580000)]), HUNDRED_FEET_M)
    geographic_records = gpd.GeoDataFrame({"record_key": [0]}, geometry=[Point(-87.6, 41.9)], crs=GEOGRAPHIC_CRS)
    with pytest.raises(FrameMismatchError):
        classify_membership(geographic_records, buffer)


def test_zone_buffer_radius():
    buffer = build_zone_buffer(-87.62636, 41.91298, 1700 * 0.3048, 26971)
    records = to_planar(
        gpd.GeoDataFrame(
            {"record_key": [0, 1, 2]},
            # ~333 m north, ~1.1 km north, the centre itself.
            geometry=[Point(-87.62636, 41.91598), Point(-87.62636, 41.92298), Point(-87.62636, 41.91298)],
            crs=GEOGRAPHIC_CRS,
        ),
        26971,
    )

    out = classify_membership(records, buffer)

    assert buffer.crs.to_epsg() == 26971
    assert out[MEMBERSHIP_COLUMN].tolist() == [True, False, True]
    assert filter_members(out)["record_key"].tolist() == [0, 2]


def test_buffer_for_presentation_is_geographic():
    buffer = build_zone_buffer(-87.62636, 41.91298, 100, 26971)
    layer = buffer_for_presentation(buffer)
    assert layer.crs == GEOGRAPHIC_CRS
    assert layer.geometry.iloc[0].contains(Point(-87.62636, 41.91298))
