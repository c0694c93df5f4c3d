"""Filesystem helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_yaml(path: Path):
    import yaml

    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def write_json(path: Path, payload) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)
        f.write("\n")


def read_json(path: Path):
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def read_csv_table(path: Path) -> pd.DataFrame:
    # Everything as text; stages coerce the columns they own.
    return pd.read_csv(path, dtype=str, keep_default_na=True)


def write_csv_table(path: Path, frame: pd.DataFrame) -> None:
    ensure_dir(path.parent)
    frame.to_csv(path, index=False, encoding="utf-8", lineterminator="\n")


def write_geojson(path: Path, frame) -> None:
    ensure_dir(path.parent)
    if path.exists():
        path.unlink()
    frame.to_file(path, driver="GeoJSON")
