"""Buffer construction and point-in-buffer classification."""

from __future__ import annotations

import logging

import geopandas as gpd
from shapely.geometry import Point
from shapely.ops import unary_union

from district_crashes.common.geometry import (
    GEOGRAPHIC_CRS,
    planar_crs,
    require_planar,
    require_shared_frame,
    to_geographic,
)
from district_crashes.common.logging import get_stage_logger, log_event

MEMBERSHIP_COLUMN = "is_in_corridor_buffer"


def build_corridor_buffer(lines: gpd.GeoDataFrame, distance_m: float) -> gpd.GeoSeries:
    """Buffer every line by ``distance_m`` and union them into one polygon.

    ``lines`` must already be planar. No lines gives an empty series, which
    classifies every record as outside.
    """
    crs = require_planar(lines, what="corridor lines")
    if lines.empty:
        return gpd.GeoSeries([], crs=crs)
    merged = unary_union(list(lines.geometry.buffer(float(distance_m))))
    return gpd.GeoSeries([merged], crs=crs)


def build_zone_buffer(lon: float, lat: float, radius_m: float, planar_epsg: int) -> gpd.GeoSeries:
    center = gpd.GeoSeries([Point(float(lon), float(lat))], crs=GEOGRAPHIC_CRS)
    return center.to_crs(planar_crs(planar_epsg)).buffer(float(radius_m))


def classify_membership(
    records: gpd.GeoDataFrame,
    buffer: gpd.GeoSeries,
    *,
    flag_column: str = MEMBERSHIP_COLUMN,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    """Copy of ``records`` with ``flag_column`` true where the point touches the buffer."""
    logger = logger or get_stage_logger()
    require_shared_frame(records, buffer, what="corridor membership")

    out = records.copy()
    if buffer.empty or len(out) == 0:
        out[flag_column] = False
    else:
        area = unary_union(list(buffer))
        out[flag_column] = out.geometry.intersects(area).astype(bool)

    log_event(
        logger,
        f"{int(out[flag_column].sum())} of {len(out)} records inside buffer",
        stage="corridor_membership",
        event="MEMBERSHIP_CLASSIFIED",
        status="ok",
        rows_in=len(records),
        rows_out=int(out[flag_column].sum()),
    )
    return out


def filter_members(records: gpd.GeoDataFrame, *, flag_column: str = MEMBERSHIP_COLUMN) -> gpd.GeoDataFrame:
    return records.loc[records[flag_column].astype(bool)].reset_index(drop=True)


def buffer_for_presentation(buffer: gpd.GeoSeries) -> gpd.GeoDataFrame:
    return to_geographic(gpd.GeoDataFrame(geometry=buffer.reset_index(drop=True), crs=buffer.crs))
