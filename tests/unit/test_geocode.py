import pandas as pd
import pytest

from district_crashes.common.errors import StageError
from district_crashes.common.geometry import GEOGRAPHIC_CRS
from district_crashes.pipeline.geocode import geocode_records, valid_coordinate_mask


def test_geocode_records_builds_points_and_drops_bad_rows():
    frame = pd.DataFrame(
        {
            "id": ["a", "b", "c", "d", "e"],
            "longitude": ["-87.63", None, "east", "-87.70", "-200"],
            "latitude": ["41.90", "41.80", "41.85", "", "41.9"],
        }
    )

    out = geocode_records(frame)

    assert list(out["id"]) == ["a"]
    assert out.crs == GEOGRAPHIC_CRS
    assert out.geometry.iloc[0].x == pytest.approx(-87.63)
    assert out.geometry.iloc[0].y == pytest.approx(41.90)
    assert out["longitude"].iloc[0] == pytest.approx(-87.63)


def test_geocode_records_uses_configured_fields():
    frame = pd.DataFrame({"Longitude": [-87.6], "Latitude": [41.9]})
    out = geocode_records(frame, lon_field="Longitude", lat_field="Latitude")
    assert len(out) == 1


def test_geocode_records_missing_field_raises():
    with pytest.raises(StageError):
        geocode_records(pd.DataFrame({"longitude": [1.0]}))


def test_geocode_records_empty_frame():
    out = geocode_records(pd.DataFrame({"longitude": [], "latitude": []}))
    assert out.empty
    assert out.crs == GEOGRAPHIC_CRS


def test_valid_coordinate_mask_bounds_are_inclusive():
    lon = pd.Series([180.0, -180.0, 180.1])
    lat = pd.Series([90.0, -90.0, 0.0])
    assert list(valid_coordinate_mask(lon, lat)) == [True, True, False]
