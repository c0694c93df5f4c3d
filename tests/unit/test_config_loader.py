from datetime import date
from pathlib import Path

import pytest

from district_crashes.common.config_loader import load_all_configs, resolve_analyses
from district_crashes.common.errors import ConfigError

PIPELINE_YAML = """analysis_window:
  start: "2019-01-01"
  end: "2025-01-01"
bbox:
  south: 41.6
  west: -87.9
  north: 42.0
  east: -87.5
inputs:
  crashes:
    path: data/crashes.csv
  fatalities:
    path: data/fatalities.csv
    columns:
      fatality_victim: VICTIM_TYPE
boundaries:
  senate:
    path: data/senate.geojson
  house:
    path: data/house.geojson
    id_attribute: DISTRICT_N
"""

ANALYSES_YAML = """analyses:
  - name: all_districts
    kind: districts
  - name: lakeshore
    kind: corridor
    name_filter: Lake Shore
    buffer_distance_ft: 150
  - name: lakeshore_senate_6
    kind: corridor
    name_filter: Lake Shore
    district_kinds: [senate]
    district_filter:
      senate: [6]
    group_by: [all]
  - name: ramp
    kind: zone
    center: {lon: -87.62636, lat: 41.91298}
    radius_ft: 1700
"""


def _write_base(base: Path) -> None:
    base.mkdir()
    (base / "pipeline.yml").write_text(PIPELINE_YAML, encoding="utf-8")
    (base / "analyses.yml").write_text(ANALYSES_YAML, encoding="utf-8")


def test_load_all_configs_from_repo_config_dir():
    bundle = load_all_configs(Path("config"))
    assert {spec.kind for spec in bundle.analyses} == {"districts", "corridor", "zone"}
    assert bundle.pipeline.damage_model == "tiered"
    assert bundle.pipeline.costs.fatality == 1_778_000
    assert bundle.analysis("lasalle_ramp").radius_ft == 1700


def test_load_all_configs_builds_immutable_values(tmp_path: Path):
    _write_base(tmp_path / "base")
    bundle = load_all_configs(tmp_path / "base")
    pipeline = bundle.pipeline

    assert pipeline.window.start == date(2019, 1, 1)
    assert pipeline.window.end == date(2025, 1, 1)
    assert pipeline.buffer_distance_ft == 100
    assert pipeline.planar_epsg == 26971
    assert pipeline.inputs.fatality_columns["fatality_victim"] == "VICTIM_TYPE"
    assert pipeline.inputs.fatality_columns["longitude"] == "Longitude"
    assert pipeline.boundary("house").id_attribute == "DISTRICT_N"
    assert pipeline.boundary("senate").column == "senate_district"

    with pytest.raises(TypeError):
        pipeline.inputs.crash_columns["crash_date"] = "OTHER"


def test_analysis_specs_take_defaults_and_overrides(tmp_path: Path):
    _write_base(tmp_path / "base")
    bundle = load_all_configs(tmp_path / "base")

    districts = bundle.analysis("all_districts")
    assert districts.group_by == ("senate_district", "house_district")
    assert districts.label == "all_districts"

    lakeshore = bundle.analysis("lakeshore")
    assert lakeshore.buffer_distance_m(bundle.pipeline) == pytest.approx(150 * 0.3048)
    assert lakeshore.search_bbox(bundle.pipeline) == bundle.pipeline.bbox

    subset = bundle.analysis("lakeshore_senate_6")
    assert subset.district_kinds == ("senate",)
    assert subset.district_filter["senate"] == ("6",)
    assert subset.group_by == ("all",)
    assert subset.buffer_distance_m(bundle.pipeline) == pytest.approx(30.48)

    ramp = bundle.analysis("ramp")
    assert ramp.center == (-87.62636, 41.91298)
    assert ramp.buffer_distance_m(bundle.pipeline) == pytest.approx(1700 * 0.3048)


def test_load_all_configs_applies_overlay_values(tmp_path: Path):
    _write_base(tmp_path / "base")
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text(
        """damage_model: additive
damage_costs:
  crash: 12000
bbox:
  north: 42.1
""",
        encoding="utf-8",
    )

    bundle = load_all_configs(tmp_path / "base", overlay_config_dir=overlay)

    assert bundle.pipeline.damage_model == "additive"
    assert bundle.pipeline.costs.crash == 12000
    assert bundle.pipeline.costs.fatality == 1_778_000
    assert bundle.pipeline.bbox.north == 42.1
    assert bundle.pipeline.bbox.south == 41.6


def test_load_all_configs_ignores_empty_overlay_file(tmp_path: Path):
    _write_base(tmp_path / "base")
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "analyses.yml").write_text("", encoding="utf-8")

    bundle = load_all_configs(tmp_path / "base", overlay_config_dir=overlay)
    assert len(bundle.analyses) == 4


def test_load_all_configs_rejects_non_mapping_overlay(tmp_path: Path):
    _write_base(tmp_path / "base")
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text("- not\n- a\n- mapping\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(tmp_path / "base", overlay_config_dir=overlay)


def test_load_all_configs_rejects_missing_file(tmp_path: Path):
    base = tmp_path / "base"
    base.mkdir()
    (base / "pipeline.yml").write_text(PIPELINE_YAML, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base)


def test_window_start_after_end_rejected(tmp_path: Path):
    base = tmp_path / "base"
    _write_base(base)
    (base / "pipeline.yml").write_text(PIPELINE_YAML.replace('start: "2019-01-01"', 'start: "2026-01-01"'), encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base)


def test_resolve_analyses_by_command_and_name(tmp_path: Path):
    _write_base(tmp_path / "base")
    bundle = load_all_configs(tmp_path / "base")

    assert [spec.name for spec in resolve_analyses(bundle, "corridor")] == ["lakeshore", "lakeshore_senate_6"]
    assert len(resolve_analyses(bundle, "all")) == 4
    assert [spec.name for spec in resolve_analyses(bundle, "zone", "ramp")] == ["ramp"]
    assert [spec.name for spec in resolve_analyses(bundle, "all", "ramp")] == ["ramp"]

    with pytest.raises(ConfigError):
        resolve_analyses(bundle, "corridor", "ramp")
    with pytest.raises(ConfigError):
        resolve_analyses(bundle, "all", "missing")
