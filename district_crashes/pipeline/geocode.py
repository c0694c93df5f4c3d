"""Point geocoding of tabular rows."""

from __future__ import annotations

import logging

import geopandas as gpd
import pandas as pd

from district_crashes.common.errors import StageError
from district_crashes.common.geometry import GEOGRAPHIC_CRS
from district_crashes.common.logging import get_stage_logger, log_event


def _coerce_coordinate(values: pd.Series) -> pd.Series:
    return pd.to_numeric(values, errors="coerce")


def valid_coordinate_mask(lon: pd.Series, lat: pd.Series) -> pd.Series:
    return lon.notna() & lat.notna() & lat.between(-90, 90) & lon.between(-180, 180)


def geocode_records(
    frame: pd.DataFrame,
    *,
    lon_field: str = "longitude",
    lat_field: str = "latitude",
    source: str | None = None,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    """Turn rows into EPSG:4326 points, dropping rows without a usable coordinate pair.

    Missing or non-numeric coordinates are input errors: the row is excluded,
    never raised, so nothing downstream ever tests a null geometry.
    """
    logger = logger or get_stage_logger()
    for field in (lon_field, lat_field):
        if field not in frame.columns:
            raise StageError(f"Coordinate field {field} missing from {source or 'input'} rows")

    lon = _coerce_coordinate(frame[lon_field])
    lat = _coerce_coordinate(frame[lat_field])
    keep = valid_coordinate_mask(lon, lat)

    kept = frame.loc[keep].copy()
    kept[lon_field] = lon[keep]
    kept[lat_field] = lat[keep]
    out = gpd.GeoDataFrame(
        kept.reset_index(drop=True),
        geometry=gpd.points_from_xy(lon[keep], lat[keep]),
        crs=GEOGRAPHIC_CRS,
    )

    dropped = int((~keep).sum())
    log_event(
        logger,
        f"geocoded {len(out)} rows, dropped {dropped} without usable coordinates",
        stage="geocode",
        source=source,
        event="GEOCODED",
        status="ok" if dropped == 0 else "partial",
        rows_in=len(frame),
        rows_out=len(out),
    )
    return out
