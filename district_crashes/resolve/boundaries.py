"""District boundary resolution."""

from __future__ import annotations

import logging
from typing import Iterable

import geopandas as gpd
import pandas as pd

from district_crashes.common.errors import BoundaryResolutionError
from district_crashes.common.geometry import to_geographic
from district_crashes.common.logging import get_stage_logger, log_event
from district_crashes.common.models import BoundarySource


def normalise_district_id(value: object) -> str | None:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    if not text:
        return None
    try:
        as_float = float(text)
    except ValueError:
        return text
    if as_float.is_integer() and "." in text:
        return str(int(as_float))
    return text


def _read_source(source: BoundarySource) -> gpd.GeoDataFrame:
    try:
        return gpd.read_file(source.path)
    except Exception as exc:
        raise BoundaryResolutionError(f"Cannot read {source.kind} boundaries from {source.path}: {exc}") from exc


def resolve_district_boundaries(
    source: BoundarySource,
    *,
    raw: gpd.GeoDataFrame | None = None,
    id_filter: Iterable[str] | None = None,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    """Load one district kind as ``[<kind>_district, geometry]`` in EPSG:4326.

    ``raw`` short-circuits the file read with an already-loaded frame. All
    other source attributes are dropped.
    """
    logger = logger or get_stage_logger()
    frame = raw if raw is not None else _read_source(source)

    if source.id_attribute not in frame.columns:
        raise BoundaryResolutionError(
            f"{source.kind} boundaries at {source.path} have no attribute {source.id_attribute}"
        )
    if frame.crs is None:
        raise BoundaryResolutionError(f"{source.kind} boundaries at {source.path} carry no CRS")

    column = source.column
    geometry_name = frame.geometry.name
    out = frame[[source.id_attribute, geometry_name]].rename(columns={source.id_attribute: column})
    if geometry_name != "geometry":
        out = out.rename_geometry("geometry")
    out[column] = out[column].map(normalise_district_id)
    out = out[out[column].notna() & out.geometry.notna() & ~out.geometry.is_empty]

    if id_filter is not None:
        wanted = {normalise_district_id(v) for v in id_filter}
        out = out[out[column].isin(wanted)]

    if out.empty:
        raise BoundaryResolutionError(f"No usable {source.kind} boundaries resolved from {source.path}")

    out = to_geographic(out).reset_index(drop=True)
    log_event(
        logger,
        f"resolved {len(out)} {source.kind} district boundaries",
        stage="resolve_boundaries",
        source=source.kind,
        event="BOUNDARIES_RESOLVED",
        status="ok",
        rows_in=len(frame),
        rows_out=len(out),
    )
    return out
