"""Polygon containment join of record points against district boundaries."""

from __future__ import annotations

import logging

import geopandas as gpd

from district_crashes.common.constants import DISTRICT_KINDS
from district_crashes.common.geometry import GEOGRAPHIC_CRS, require_frame, require_shared_frame
from district_crashes.common.logging import get_stage_logger, log_event
from district_crashes.common.models import district_column

DISTRICT_COLUMNS = tuple(district_column(kind) for kind in DISTRICT_KINDS)


def _boundary_column(boundaries: gpd.GeoDataFrame) -> str:
    columns = [col for col in boundaries.columns if col != boundaries.geometry.name]
    if len(columns) != 1:
        raise ValueError(f"boundary frame must carry exactly one id column, got {columns}")
    return columns[0]


def join_districts(
    records: gpd.GeoDataFrame,
    boundaries: gpd.GeoDataFrame,
    *,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    """Annotate each record with the id of every district polygon containing it.

    Records outside every polygon are dropped; overlapping polygons yield one
    row per (record, district). Re-running against the same boundaries
    replaces the previous assignment instead of stacking it.
    """
    logger = logger or get_stage_logger()
    require_frame(records, GEOGRAPHIC_CRS, what="records")
    require_shared_frame(records, boundaries, what="district join")
    column = _boundary_column(boundaries)

    base = records.drop(columns=[column]) if column in records.columns else records
    joined = gpd.sjoin(base, boundaries[[column, boundaries.geometry.name]], how="inner", predicate="within")
    joined = joined.drop(columns=["index_right"])

    dedupe_on = ["record_key", *[col for col in DISTRICT_COLUMNS if col in joined.columns]]
    if column not in dedupe_on:
        dedupe_on.append(column)
    joined = joined.drop_duplicates(subset=dedupe_on).reset_index(drop=True)

    log_event(
        logger,
        f"joined records to {column}",
        stage="district_join",
        source=column,
        event="DISTRICTS_JOINED",
        status="ok",
        rows_in=len(records),
        rows_out=len(joined),
    )
    return joined


def join_all_districts(
    records: gpd.GeoDataFrame,
    boundaries_by_kind: dict[str, gpd.GeoDataFrame],
    kinds: tuple[str, ...],
    *,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    out = records
    for kind in kinds:
        out = join_districts(out, boundaries_by_kind[kind], logger=logger)
    return out
