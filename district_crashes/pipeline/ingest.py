"""Crash and fatality row parsing and the unioned record stream."""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Mapping

import geopandas as gpd
import pandas as pd

from district_crashes.common.errors import StageError
from district_crashes.common.fs import read_csv_table
from district_crashes.common.geometry import require_shared_frame
from district_crashes.common.logging import get_stage_logger, log_event
from district_crashes.common.models import AnalysisWindow, InputSources, PipelineConfig
from district_crashes.pipeline.geocode import geocode_records

UNION_COLUMNS = [
    "record_key",
    "record_source",
    "crash_record_id",
    "crash_date",
    "injuries_total",
    "injuries_incapacitating",
    "first_crash_type",
    "hit_and_run",
    "fatality_person_id",
    "location",
    "fatality_crash_location",
    "fatality_victim",
    "longitude",
    "latitude",
    "crash_count",
    "fatality_count",
]

_HIT_AND_RUN_VALUES = {"Y": True, "YES": True, "TRUE": True, "N": False, "NO": False, "FALSE": False}


def _select_columns(raw: pd.DataFrame, columns: Mapping[str, str], source: str) -> pd.DataFrame:
    missing = [src for src in columns.values() if src not in raw.columns]
    if missing:
        raise StageError(f"{source} input is missing columns: {', '.join(sorted(missing))}")
    return raw[list(columns.values())].rename(columns={src: dst for dst, src in columns.items()})


def _clean_text(values: pd.Series, *, upper: bool = False) -> pd.Series:
    text = values.astype("string").str.strip()
    if upper:
        text = text.str.upper()
    return text.mask(text == "")


def _count_column(values: pd.Series) -> pd.Series:
    counts = pd.to_numeric(values, errors="coerce")
    return counts.mask(counts < 0)


def parse_timestamps(values: pd.Series, fmt: str | None) -> pd.Series:
    if fmt:
        return pd.to_datetime(values, format=fmt, errors="coerce")
    return pd.to_datetime(values, errors="coerce")


def window_mask(timestamps: pd.Series, window: AnalysisWindow) -> pd.Series:
    # Both ends inclusive: the whole end date counts.
    start = pd.Timestamp(window.start)
    end_exclusive = pd.Timestamp(window.end + timedelta(days=1))
    return timestamps.notna() & (timestamps >= start) & (timestamps < end_exclusive)


def _apply_window(frame: pd.DataFrame, window: AnalysisWindow, source: str, logger: logging.Logger) -> pd.DataFrame:
    keep = window_mask(frame["crash_date"], window)
    unparsed = int(frame["crash_date"].isna().sum())
    log_event(
        logger,
        f"{source}: kept {int(keep.sum())} rows in window, {unparsed} with unparseable timestamps",
        stage="ingest",
        source=source,
        event="WINDOW_FILTERED",
        status="ok",
        rows_in=len(frame),
        rows_out=int(keep.sum()),
    )
    return frame.loc[keep].reset_index(drop=True)


def prepare_crash_rows(
    raw: pd.DataFrame,
    inputs: InputSources,
    window: AnalysisWindow,
    *,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    logger = logger or get_stage_logger()
    frame = _select_columns(raw, inputs.crash_columns, "crash")
    frame["crash_record_id"] = _clean_text(frame["crash_record_id"])
    frame["crash_date"] = parse_timestamps(frame["crash_date"], inputs.timestamp_format)
    frame["injuries_total"] = _count_column(frame["injuries_total"])
    frame["injuries_incapacitating"] = _count_column(frame["injuries_incapacitating"])
    frame["first_crash_type"] = _clean_text(frame["first_crash_type"], upper=True)
    frame["hit_and_run"] = _clean_text(frame["hit_and_run"], upper=True).map(_HIT_AND_RUN_VALUES).astype("boolean")
    frame["record_source"] = "crash"
    return _apply_window(frame, window, "crash", logger)


def prepare_fatality_rows(
    raw: pd.DataFrame,
    inputs: InputSources,
    window: AnalysisWindow,
    *,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    logger = logger or get_stage_logger()
    frame = _select_columns(raw, inputs.fatality_columns, "fatality")
    frame["crash_date"] = parse_timestamps(frame["crash_date"], inputs.timestamp_format)
    frame["fatality_victim"] = _clean_text(frame["fatality_victim"], upper=True)
    for column in ("fatality_person_id", "location", "fatality_crash_location"):
        if column in frame.columns:
            frame[column] = _clean_text(frame[column])
    frame["record_source"] = "fatality"
    return _apply_window(frame, window, "fatality", logger)


def present_flag(values: pd.Series) -> pd.Series:
    """1 where a non-empty value is present, else 0."""
    text = values.astype("string").str.strip()
    return (text.notna() & (text != "")).fillna(False).astype(int)


def union_records(crashes: gpd.GeoDataFrame, fatalities: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Lift crash and fatality points into one superset schema with derived counts."""
    require_shared_frame(crashes, fatalities, what="crash/fatality union")
    columns = [col for col in UNION_COLUMNS if col not in ("record_key", "crash_count", "fatality_count")]
    parts = [
        frame.reindex(columns=[*columns, "geometry"])
        for frame in (crashes, fatalities)
        if len(frame)
    ]
    if parts:
        combined = pd.concat(parts, ignore_index=True)
    else:
        combined = pd.DataFrame(columns=[*columns, "geometry"])
    out = gpd.GeoDataFrame(combined, geometry="geometry", crs=crashes.crs)
    out["hit_and_run"] = out["hit_and_run"].astype("boolean")
    out.insert(0, "record_key", range(len(out)))
    out["crash_count"] = present_flag(out["crash_record_id"])
    out["fatality_count"] = present_flag(out["fatality_victim"])
    return out[[*UNION_COLUMNS, "geometry"]]


def build_record_stream(
    crash_rows: pd.DataFrame,
    fatality_rows: pd.DataFrame,
    config: PipelineConfig,
    *,
    logger: logging.Logger | None = None,
) -> gpd.GeoDataFrame:
    logger = logger or get_stage_logger()
    inputs = config.inputs
    crashes = geocode_records(
        prepare_crash_rows(crash_rows, inputs, config.window, logger=logger),
        source="crash",
        logger=logger,
    )
    fatalities = geocode_records(
        prepare_fatality_rows(fatality_rows, inputs, config.window, logger=logger),
        source="fatality",
        logger=logger,
    )
    records = union_records(crashes, fatalities)
    log_event(
        logger,
        f"unioned {len(crashes)} crash and {len(fatalities)} fatality points",
        stage="ingest",
        event="RECORDS_UNIONED",
        status="ok",
        rows_out=len(records),
    )
    return records


def load_record_stream(config: PipelineConfig, *, logger: logging.Logger | None = None) -> gpd.GeoDataFrame:
    paths = {"crash": Path(config.inputs.crashes_path), "fatality": Path(config.inputs.fatalities_path)}
    for source, path in paths.items():
        if not path.exists():
            raise StageError(f"Missing {source} input: {path}")
    return build_record_stream(
        read_csv_table(paths["crash"]),
        read_csv_table(paths["fatality"]),
        config,
        logger=logger,
    )
