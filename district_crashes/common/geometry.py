"""Reference-frame helpers.

Every GeoDataFrame/GeoSeries carries its active frame as ``.crs``. Stages call
these helpers before comparing two collections so a geographic/planar mix-up
fails loudly instead of producing wrong distances.
"""

from __future__ import annotations

from typing import Any

from pyproj import CRS

from district_crashes.common.constants import FEET_TO_METERS, GEOGRAPHIC_EPSG
from district_crashes.common.errors import FrameMismatchError

GEOGRAPHIC_CRS = CRS.from_epsg(GEOGRAPHIC_EPSG)


def feet_to_meters(feet: float) -> float:
    return float(feet) * FEET_TO_METERS


def planar_crs(epsg: int) -> CRS:
    crs = CRS.from_epsg(int(epsg))
    if not crs.is_projected:
        raise FrameMismatchError(f"EPSG:{epsg} is not a projected CRS")
    unit = crs.axis_info[0].unit_name if crs.axis_info else ""
    if unit not in ("metre", "meter"):
        raise FrameMismatchError(f"EPSG:{epsg} uses {unit or 'unknown'} units; buffers need metres")
    return crs


def frame_of(frame: Any) -> CRS:
    crs = getattr(frame, "crs", None)
    if crs is None:
        raise FrameMismatchError("geometry collection has no reference frame")
    return CRS.from_user_input(crs)


def require_frame(frame: Any, expected: CRS, *, what: str) -> None:
    actual = frame_of(frame)
    if actual != expected:
        raise FrameMismatchError(f"{what} is in {actual.to_string()}, expected {expected.to_string()}")


def require_shared_frame(left: Any, right: Any, *, what: str) -> CRS:
    left_crs = frame_of(left)
    right_crs = frame_of(right)
    if left_crs != right_crs:
        raise FrameMismatchError(
            f"{what}: frames differ ({left_crs.to_string()} vs {right_crs.to_string()}); reproject first"
        )
    return left_crs


def to_geographic(frame: Any):
    frame_of(frame)
    return frame.to_crs(GEOGRAPHIC_CRS)


def to_planar(frame: Any, epsg: int):
    frame_of(frame)
    return frame.to_crs(planar_crs(epsg))


def require_planar(frame: Any, *, what: str) -> CRS:
    crs = frame_of(frame)
    unit = crs.axis_info[0].unit_name if crs.axis_info else ""
    if not crs.is_projected or unit not in ("metre", "meter"):
        raise FrameMismatchError(f"{what} must be in a metre-based planar frame, got {crs.to_string()}")
    return crs
