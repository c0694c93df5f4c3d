"""Immutable configuration values passed into every pipeline invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Mapping

from district_crashes.common.constants import DEFAULT_PLANAR_EPSG
from district_crashes.common.geometry import feet_to_meters

DEFAULT_CRASH_COLUMNS = MappingProxyType(
    {
        "crash_record_id": "CRASH_RECORD_ID",
        "crash_date": "CRASH_DATE",
        "longitude": "LONGITUDE",
        "latitude": "LATITUDE",
        "injuries_total": "INJURIES_TOTAL",
        "injuries_incapacitating": "INJURIES_INCAPACITATING",
        "first_crash_type": "FIRST_CRASH_TYPE",
        "hit_and_run": "HIT_AND_RUN_I",
    }
)
DEFAULT_FATALITY_COLUMNS = MappingProxyType(
    {
        "fatality_person_id": "Person_ID",
        "crash_date": "Crash_Date",
        "location": "Location",
        "fatality_crash_location": "Crash_Location",
        "fatality_victim": "Victim",
        "longitude": "Longitude",
        "latitude": "Latitude",
    }
)
DEFAULT_TIMESTAMP_FORMAT = "%m/%d/%Y %I:%M:%S %p"


def district_column(kind: str) -> str:
    return f"{kind}_district"


@dataclass(frozen=True)
class DamageCosts:
    """Unit costs in USD (National Safety Council injury-cost guidance)."""

    fatality: float = 1_778_000
    incapacitating_injury: float = 155_000
    injury: float = 24_000
    crash: float = 11_400


@dataclass(frozen=True)
class AnalysisWindow:
    start: date
    end: date


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float

    def overpass_clause(self) -> str:
        return f"{self.south},{self.west},{self.north},{self.east}"


@dataclass(frozen=True)
class OverpassSettings:
    endpoint: str = "https://overpass-api.de/api/interpreter"
    timeout_seconds: int = 180
    max_attempts: int = 4


@dataclass(frozen=True)
class BoundarySource:
    kind: str
    path: str
    id_attribute: str = "DISTRICT"

    @property
    def column(self) -> str:
        return district_column(self.kind)


@dataclass(frozen=True)
class InputSources:
    crashes_path: str
    fatalities_path: str
    crash_columns: Mapping[str, str] = field(default_factory=lambda: DEFAULT_CRASH_COLUMNS)
    fatality_columns: Mapping[str, str] = field(default_factory=lambda: DEFAULT_FATALITY_COLUMNS)
    timestamp_format: str | None = DEFAULT_TIMESTAMP_FORMAT


@dataclass(frozen=True)
class PipelineConfig:
    window: AnalysisWindow
    bbox: BoundingBox
    inputs: InputSources
    boundaries: tuple[BoundarySource, ...]
    costs: DamageCosts = field(default_factory=DamageCosts)
    damage_model: str = "tiered"
    buffer_distance_ft: float = 100.0
    planar_epsg: int = DEFAULT_PLANAR_EPSG
    overpass: OverpassSettings = field(default_factory=OverpassSettings)

    def boundary(self, kind: str) -> BoundarySource:
        for source in self.boundaries:
            if source.kind == kind:
                return source
        raise KeyError(kind)


@dataclass(frozen=True)
class AnalysisSpec:
    """One named analysis: all districts, a street corridor, or a radius zone."""

    name: str
    kind: str
    label: str = ""
    name_filter: str | None = None
    buffer_distance_ft: float | None = None
    bbox: BoundingBox | None = None
    center: tuple[float, float] | None = None
    radius_ft: float | None = None
    group_by: tuple[str, ...] = ("senate_district", "house_district")
    district_kinds: tuple[str, ...] = ("senate", "house")
    district_filter: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))

    def buffer_distance_m(self, config: PipelineConfig) -> float:
        if self.kind == "zone":
            feet = self.radius_ft
        elif self.buffer_distance_ft is not None:
            feet = self.buffer_distance_ft
        else:
            feet = config.buffer_distance_ft
        return feet_to_meters(feet)

    def search_bbox(self, config: PipelineConfig) -> BoundingBox:
        return self.bbox or config.bbox
