"""One parameterized analysis: district join, optional buffer membership, damages, summaries."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

import geopandas as gpd
import pandas as pd

from district_crashes.common.errors import BoundaryResolutionError, ConfigError
from district_crashes.common.geometry import to_geographic, to_planar
from district_crashes.common.logging import get_stage_logger, log_event
from district_crashes.common.models import AnalysisSpec, PipelineConfig, district_column
from district_crashes.pipeline.aggregate import summarize
from district_crashes.pipeline.corridor_membership import (
    build_corridor_buffer,
    build_zone_buffer,
    buffer_for_presentation,
    classify_membership,
    filter_members,
)
from district_crashes.pipeline.damages import DAMAGE_COLUMN, apply_damages
from district_crashes.pipeline.district_join import join_all_districts
from district_crashes.resolve.boundaries import normalise_district_id
from district_crashes.resolve.overpass_corridors import CorridorResolver

FATALITY_LAYER_COLUMNS = [
    "record_key",
    "crash_date",
    "fatality_count",
    "first_crash_type",
    "fatality_victim",
    "location",
]


@dataclass
class AnalysisResult:
    name: str
    kind: str
    label: str
    records: gpd.GeoDataFrame
    summaries: dict[str, pd.DataFrame] = field(default_factory=dict)
    layers: dict[str, gpd.GeoDataFrame] = field(default_factory=dict)

    def totals(self) -> dict:
        distinct = self.records.drop_duplicates(subset=["record_key"])
        return {
            "records": int(len(distinct)),
            "crashes": int(pd.to_numeric(distinct["crash_count"], errors="coerce").fillna(0).sum()),
            "fatalities": int(pd.to_numeric(distinct["fatality_count"], errors="coerce").fillna(0).sum()),
            "estimated_economic_damages": float(distinct[DAMAGE_COLUMN].fillna(0).sum()),
        }


def select_boundaries(
    spec: AnalysisSpec,
    boundaries_by_kind: dict[str, gpd.GeoDataFrame],
) -> dict[str, gpd.GeoDataFrame]:
    """Boundaries this analysis joins against, narrowed by its district filter."""
    selected: dict[str, gpd.GeoDataFrame] = {}
    for kind in spec.district_kinds:
        if kind not in boundaries_by_kind:
            raise ConfigError(f"analysis {spec.name} joins {kind} districts but none were loaded")
        frame = boundaries_by_kind[kind]
        wanted = spec.district_filter.get(kind)
        if wanted:
            ids = {normalise_district_id(value) for value in wanted}
            column = district_column(kind)
            missing = sorted(ids - set(frame[column]), key=str)
            if missing:
                raise BoundaryResolutionError(
                    f"analysis {spec.name} filters {kind} districts {missing} that match no boundary"
                )
            frame = frame[frame[column].isin(ids)].reset_index(drop=True)
        selected[kind] = frame
    return selected


def _distinct_for_key(records: pd.DataFrame, group_key: str | None) -> pd.DataFrame:
    # Overlapping polygons repeat a record; count it once per summary key.
    subset = ["record_key"] if group_key is None else ["record_key", group_key]
    return records.drop_duplicates(subset=subset)


def build_summaries(records: pd.DataFrame, group_by: tuple[str, ...]) -> dict[str, pd.DataFrame]:
    summaries: dict[str, pd.DataFrame] = {}
    for key in group_by:
        group_key = None if key == "all" else key
        summaries[key] = summarize(_distinct_for_key(records, group_key), group_key)
    return summaries


def _district_layers(boundaries: dict[str, gpd.GeoDataFrame], planar_epsg: int) -> dict[str, gpd.GeoDataFrame]:
    layers: dict[str, gpd.GeoDataFrame] = {}
    for kind, frame in boundaries.items():
        polygons = to_geographic(frame)
        # Centroids are taken in the planar frame, then brought back for display.
        labels = to_planar(frame, planar_epsg)
        labels = gpd.GeoDataFrame(
            {district_column(kind): labels[district_column(kind)]},
            geometry=labels.geometry.centroid,
            crs=labels.crs,
        )
        layers[f"{kind}_districts"] = polygons
        layers[f"{kind}_labels"] = to_geographic(labels)
    return layers


def _fatality_layer(records: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    fatalities = records.loc[pd.to_numeric(records["fatality_count"], errors="coerce").fillna(0) > 0]
    fatalities = fatalities.drop_duplicates(subset=["record_key"])
    columns = [col for col in FATALITY_LAYER_COLUMNS if col in fatalities.columns]
    return to_geographic(fatalities[[*columns, "geometry"]].reset_index(drop=True))


def run_analysis(
    spec: AnalysisSpec,
    config: PipelineConfig,
    records: gpd.GeoDataFrame,
    boundaries_by_kind: dict[str, gpd.GeoDataFrame],
    *,
    resolver: CorridorResolver | None = None,
    logger: logging.Logger | None = None,
) -> AnalysisResult:
    """Run one configured analysis over a private copy of ``records``."""
    logger = logger or get_stage_logger()
    started = time.monotonic()
    log_event(logger, "analysis start", stage="analysis", analysis=spec.name, event="ANALYSIS_START", status="ok")

    boundaries = select_boundaries(spec, boundaries_by_kind)
    joined = join_all_districts(records.copy(), boundaries, spec.district_kinds, logger=logger)
    layers = _district_layers(boundaries, config.planar_epsg)

    if spec.kind == "districts":
        members = joined
    elif spec.kind in ("corridor", "zone"):
        if spec.kind == "corridor":
            if resolver is None:
                raise ConfigError(f"corridor analysis {spec.name} needs a corridor resolver")
            lines = resolver.resolve(spec.search_bbox(config), str(spec.name_filter))
            buffer = build_corridor_buffer(lines, spec.buffer_distance_m(config))
            layers["corridor"] = to_geographic(lines)
        else:
            lon, lat = spec.center
            buffer = build_zone_buffer(lon, lat, spec.buffer_distance_m(config), config.planar_epsg)
        classified = classify_membership(to_planar(joined, config.planar_epsg), buffer, logger=logger)
        members = to_geographic(filter_members(classified))
        if not buffer.empty:
            layers["buffer"] = buffer_for_presentation(buffer)
    else:
        raise ConfigError(f"Unknown analysis kind: {spec.kind}")

    costed = apply_damages(members, config.costs, model=config.damage_model, logger=logger)
    layers["fatalities"] = _fatality_layer(costed)
    result = AnalysisResult(
        name=spec.name,
        kind=spec.kind,
        label=spec.label or spec.name,
        records=costed,
        summaries=build_summaries(costed, spec.group_by),
        layers=layers,
    )

    log_event(
        logger,
        "analysis end",
        stage="analysis",
        analysis=spec.name,
        event="ANALYSIS_END",
        status="ok" if len(costed) else "empty",
        duration_ms=int((time.monotonic() - started) * 1000),
        rows_in=len(records),
        rows_out=len(costed),
    )
    return result

