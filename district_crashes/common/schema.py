"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from district_crashes.common.constants import ANALYSIS_KINDS, DISTRICT_KINDS
from district_crashes.common.errors import ConfigError

DAMAGE_MODELS = ("tiered", "additive")
COST_KEYS = {"fatality", "incapacitating_injury", "injury", "crash"}


def _assert_mapping(obj: object, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    _assert_mapping(obj, ctx)
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_non_negative(value: object, ctx: str) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
        raise ConfigError(f"{ctx} must be a non-negative number, got {value!r}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"analysis_window", "bbox", "inputs", "boundaries"}
    top_known = top_required | {
        "buffer_distance_ft",
        "planar_epsg",
        "damage_model",
        "damage_costs",
        "overpass",
    }
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_known, "pipeline config", allow_unknown)

    _assert_required_keys(cfg["analysis_window"], {"start", "end"}, "analysis_window")
    _assert_required_keys(cfg["bbox"], {"south", "west", "north", "east"}, "bbox")
    bbox = cfg["bbox"]
    if not (bbox["south"] < bbox["north"] and bbox["west"] < bbox["east"]):
        raise ConfigError("bbox must satisfy south < north and west < east")

    _assert_required_keys(cfg["inputs"], {"crashes", "fatalities"}, "inputs")
    _assert_no_unknown_keys(cfg["inputs"], {"crashes", "fatalities", "timestamp_format"}, "inputs", allow_unknown)
    for source in ("crashes", "fatalities"):
        _assert_required_keys(cfg["inputs"][source], {"path"}, f"inputs.{source}")
        _assert_no_unknown_keys(cfg["inputs"][source], {"path", "columns"}, f"inputs.{source}", allow_unknown)
        if "columns" in cfg["inputs"][source]:
            _assert_mapping(cfg["inputs"][source]["columns"], f"inputs.{source}.columns")

    boundaries = _assert_mapping(cfg["boundaries"], "boundaries")
    if not boundaries:
        raise ConfigError("boundaries must name at least one district kind")
    for kind, source in boundaries.items():
        if kind not in DISTRICT_KINDS:
            raise ConfigError(f"Unknown district kind in boundaries: {kind}")
        _assert_required_keys(source, {"path"}, f"boundaries.{kind}")

    if "damage_model" in cfg and cfg["damage_model"] not in DAMAGE_MODELS:
        raise ConfigError(f"damage_model must be one of {', '.join(DAMAGE_MODELS)}")
    if "damage_costs" in cfg:
        costs = _assert_mapping(cfg["damage_costs"], "damage_costs")
        _assert_no_unknown_keys(costs, COST_KEYS, "damage_costs", allow_unknown=False)
        for key, value in costs.items():
            _assert_non_negative(value, f"damage_costs.{key}")
    if "buffer_distance_ft" in cfg:
        _assert_non_negative(cfg["buffer_distance_ft"], "buffer_distance_ft")
    if "overpass" in cfg:
        _assert_no_unknown_keys(
            _assert_mapping(cfg["overpass"], "overpass"),
            {"endpoint", "timeout_seconds", "max_attempts"},
            "overpass",
            allow_unknown,
        )

    return cfg


def validate_analysis(entry: dict, *, known_kinds: set[str], allow_unknown: bool = False) -> dict:
    _assert_required_keys(entry, {"name", "kind"}, "analysis")
    name = entry["name"]
    ctx = f"analysis {name}"
    _assert_no_unknown_keys(
        entry,
        {
            "name",
            "kind",
            "label",
            "name_filter",
            "buffer_distance_ft",
            "bbox",
            "center",
            "radius_ft",
            "group_by",
            "district_kinds",
            "district_filter",
        },
        ctx,
        allow_unknown,
    )

    kind = entry["kind"]
    if kind not in ANALYSIS_KINDS:
        raise ConfigError(f"{ctx}: kind must be one of {', '.join(ANALYSIS_KINDS)}")
    if kind == "corridor" and not str(entry.get("name_filter") or "").strip():
        raise ConfigError(f"{ctx}: corridor analyses need a non-empty name_filter")
    if kind == "zone":
        _assert_required_keys(entry, {"center", "radius_ft"}, ctx)
        _assert_required_keys(entry["center"], {"lon", "lat"}, f"{ctx}.center")
        _assert_non_negative(entry["radius_ft"], f"{ctx}.radius_ft")
    if "buffer_distance_ft" in entry:
        _assert_non_negative(entry["buffer_distance_ft"], f"{ctx}.buffer_distance_ft")
    if "bbox" in entry:
        _assert_required_keys(entry["bbox"], {"south", "west", "north", "east"}, f"{ctx}.bbox")

    district_kinds = entry.get("district_kinds") or sorted(known_kinds)
    for district_kind in district_kinds:
        if district_kind not in known_kinds:
            raise ConfigError(f"{ctx}: no boundary source configured for district kind {district_kind}")
    for district_kind in _assert_mapping(entry.get("district_filter") or {}, f"{ctx}.district_filter"):
        if district_kind not in district_kinds:
            raise ConfigError(f"{ctx}: district_filter names {district_kind}, which this analysis does not join")

    allowed_groups = {"all"} | {f"{k}_district" for k in district_kinds}
    for group in entry.get("group_by") or []:
        if group not in allowed_groups:
            raise ConfigError(f"{ctx}: cannot group by {group}")

    return entry


def validate_analyses_config(cfg: dict, *, known_kinds: set[str], allow_unknown: bool = False) -> dict:
    _assert_required_keys(cfg, {"analyses"}, "analyses config")
    if not isinstance(cfg["analyses"], list) or not cfg["analyses"]:
        raise ConfigError("analyses must be a non-empty list")

    names: list[str] = []
    for entry in cfg["analyses"]:
        validate_analysis(entry, known_kinds=known_kinds, allow_unknown=allow_unknown)
        names.append(entry["name"])

    dupes = {name for name in names if names.count(name) > 1}
    if dupes:
        raise ConfigError(f"Duplicate analysis names: {', '.join(sorted(dupes))}")

    return cfg
