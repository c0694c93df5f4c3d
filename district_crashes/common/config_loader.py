"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

from district_crashes.common.constants import DEFAULT_PLANAR_EPSG
from district_crashes.common.errors import ConfigError
from district_crashes.common.fs import read_yaml
from district_crashes.common.models import (
    DEFAULT_CRASH_COLUMNS,
    DEFAULT_FATALITY_COLUMNS,
    DEFAULT_TIMESTAMP_FORMAT,
    AnalysisSpec,
    AnalysisWindow,
    BoundarySource,
    BoundingBox,
    DamageCosts,
    InputSources,
    OverpassSettings,
    PipelineConfig,
)
from district_crashes.common.schema import validate_analyses_config, validate_pipeline_config
from district_crashes.common.time_utils import parse_iso_date

PIPELINE_FILENAME = "pipeline.yml"
ANALYSES_FILENAME = "analyses.yml"


@dataclass(frozen=True)
class ConfigBundle:
    pipeline: PipelineConfig
    analyses: tuple[AnalysisSpec, ...]

    def analysis(self, name: str) -> AnalysisSpec:
        for spec in self.analyses:
            if spec.name == name:
                return spec
        raise ConfigError(f"No analysis named {name}")


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if not isinstance(base, dict):
        raise ConfigError(f"{path} must contain a mapping")
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay {overlay_path} must contain a mapping")
    return _deep_merge(base, overlay)


def _bbox(raw: dict) -> BoundingBox:
    return BoundingBox(
        south=float(raw["south"]),
        west=float(raw["west"]),
        north=float(raw["north"]),
        east=float(raw["east"]),
    )


def _columns(defaults, overrides: dict | None) -> MappingProxyType:
    merged = dict(defaults)
    merged.update({str(k): str(v) for k, v in (overrides or {}).items()})
    return MappingProxyType(merged)


def build_pipeline_config(cfg: dict) -> PipelineConfig:
    window = AnalysisWindow(
        start=parse_iso_date(cfg["analysis_window"]["start"], field="analysis_window.start"),
        end=parse_iso_date(cfg["analysis_window"]["end"], field="analysis_window.end"),
    )
    if window.start > window.end:
        raise ConfigError("analysis_window.start must not be after analysis_window.end")

    inputs_cfg = cfg["inputs"]
    inputs = InputSources(
        crashes_path=str(inputs_cfg["crashes"]["path"]),
        fatalities_path=str(inputs_cfg["fatalities"]["path"]),
        crash_columns=_columns(DEFAULT_CRASH_COLUMNS, inputs_cfg["crashes"].get("columns")),
        fatality_columns=_columns(DEFAULT_FATALITY_COLUMNS, inputs_cfg["fatalities"].get("columns")),
        timestamp_format=inputs_cfg.get("timestamp_format", DEFAULT_TIMESTAMP_FORMAT),
    )

    boundaries = tuple(
        BoundarySource(kind=kind, path=str(source["path"]), id_attribute=str(source.get("id_attribute", "DISTRICT")))
        for kind, source in cfg["boundaries"].items()
    )

    costs_cfg = cfg.get("damage_costs") or {}
    defaults = DamageCosts()
    costs = DamageCosts(
        fatality=float(costs_cfg.get("fatality", defaults.fatality)),
        incapacitating_injury=float(costs_cfg.get("incapacitating_injury", defaults.incapacitating_injury)),
        injury=float(costs_cfg.get("injury", defaults.injury)),
        crash=float(costs_cfg.get("crash", defaults.crash)),
    )

    overpass_cfg = cfg.get("overpass") or {}
    overpass_defaults = OverpassSettings()
    overpass = OverpassSettings(
        endpoint=str(overpass_cfg.get("endpoint", overpass_defaults.endpoint)),
        timeout_seconds=int(overpass_cfg.get("timeout_seconds", overpass_defaults.timeout_seconds)),
        max_attempts=int(overpass_cfg.get("max_attempts", overpass_defaults.max_attempts)),
    )

    return PipelineConfig(
        window=window,
        bbox=_bbox(cfg["bbox"]),
        inputs=inputs,
        boundaries=boundaries,
        costs=costs,
        damage_model=str(cfg.get("damage_model", "tiered")),
        buffer_distance_ft=float(cfg.get("buffer_distance_ft", 100)),
        planar_epsg=int(cfg.get("planar_epsg", DEFAULT_PLANAR_EPSG)),
        overpass=overpass,
    )


def build_analysis_spec(entry: dict, *, known_kinds: tuple[str, ...]) -> AnalysisSpec:
    district_kinds = tuple(entry.get("district_kinds") or known_kinds)
    center = None
    if entry.get("center"):
        center = (float(entry["center"]["lon"]), float(entry["center"]["lat"]))
    district_filter = MappingProxyType(
        {kind: tuple(str(v) for v in values) for kind, values in (entry.get("district_filter") or {}).items()}
    )
    group_by = tuple(entry.get("group_by") or [f"{kind}_district" for kind in district_kinds])
    return AnalysisSpec(
        name=str(entry["name"]),
        kind=str(entry["kind"]),
        label=str(entry.get("label") or entry["name"]),
        name_filter=entry.get("name_filter"),
        buffer_distance_ft=float(entry["buffer_distance_ft"]) if "buffer_distance_ft" in entry else None,
        bbox=_bbox(entry["bbox"]) if entry.get("bbox") else None,
        center=center,
        radius_ft=float(entry["radius_ft"]) if "radius_ft" in entry else None,
        group_by=group_by,
        district_kinds=district_kinds,
        district_filter=district_filter,
    )


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    pipeline_raw = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / PIPELINE_FILENAME, _overlay(PIPELINE_FILENAME)),
        allow_unknown=allow_unknown,
    )
    pipeline = build_pipeline_config(pipeline_raw)
    known_kinds = tuple(source.kind for source in pipeline.boundaries)

    analyses_raw = validate_analyses_config(
        _load_yaml_with_overlay(config_dir / ANALYSES_FILENAME, _overlay(ANALYSES_FILENAME)),
        known_kinds=set(known_kinds),
        allow_unknown=allow_unknown,
    )
    analyses = tuple(build_analysis_spec(entry, known_kinds=known_kinds) for entry in analyses_raw["analyses"])
    return ConfigBundle(pipeline=pipeline, analyses=analyses)


def resolve_analyses(bundle: ConfigBundle, command: str, name: str | None = None) -> list[AnalysisSpec]:
    if name is not None:
        spec = bundle.analysis(name)
        if command != "all" and spec.kind != command:
            raise ConfigError(f"Analysis {name} is a {spec.kind} analysis, not {command}")
        return [spec]
    if command == "all":
        return list(bundle.analyses)
    return [spec for spec in bundle.analyses if spec.kind == command]
