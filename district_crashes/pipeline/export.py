"""Summary CSV and presentation-layer export."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from district_crashes.common.fs import write_csv_table, write_geojson
from district_crashes.common.geometry import to_geographic
from district_crashes.common.ids import slugify
from district_crashes.pipeline.analysis import AnalysisResult


def _serialize_frame(frame: pd.DataFrame) -> pd.DataFrame:
    out = pd.DataFrame(frame.drop(columns=["geometry"], errors="ignore"))
    for column in out.columns:
        if pd.api.types.is_bool_dtype(out[column]):
            out[column] = out[column].map({True: "true", False: "false"})
    return out


def write_summaries(result: AnalysisResult, data_dir: Path) -> list[Path]:
    written: list[Path] = []
    for key, summary in result.summaries.items():
        suffix = "summary" if key == "all" else f"{key}_summary"
        out_path = data_dir / "out" / "summaries" / f"{slugify(result.name)}_{suffix}.csv"
        write_csv_table(out_path, _serialize_frame(summary))
        written.append(out_path)
    return written


def write_layers(result: AnalysisResult, data_dir: Path) -> list[Path]:
    written: list[Path] = []
    for layer_name, layer in result.layers.items():
        if layer.empty:
            continue
        frame = to_geographic(layer).copy()
        for column in frame.columns:
            if column == frame.geometry.name:
                continue
            if pd.api.types.is_datetime64_any_dtype(frame[column]):
                frame[column] = frame[column].dt.strftime("%Y-%m-%dT%H:%M:%S")
            elif isinstance(frame[column].dtype, pd.api.extensions.ExtensionDtype):
                # Nullable string/boolean columns go out as plain objects with nulls.
                values = frame[column].astype(object)
                frame[column] = values.where(frame[column].notna(), None)
        out_path = data_dir / "out" / "layers" / slugify(result.name) / f"{layer_name}.geojson"
        write_geojson(out_path, frame)
        written.append(out_path)
    return written


def export_analysis(result: AnalysisResult, data_dir: Path) -> dict[str, list[str]]:
    return {
        "summaries": [str(path) for path in write_summaries(result, data_dir)],
        "layers": [str(path) for path in write_layers(result, data_dir)],
    }
