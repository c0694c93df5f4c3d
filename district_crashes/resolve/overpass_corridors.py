"""Corridor resolution: named road lines from the Overpass API."""

from __future__ import annotations

import logging
import re
import time
from typing import Protocol

import geopandas as gpd
from shapely.geometry import LineString

from district_crashes.common.constants import GEOGRAPHIC_EPSG
from district_crashes.common.errors import CorridorResolutionError
from district_crashes.common.geometry import to_planar
from district_crashes.common.http import HttpClient, HttpRequestError, RetryConfig, TimeoutConfig
from district_crashes.common.logging import get_stage_logger, log_event
from district_crashes.common.models import BoundingBox, OverpassSettings

CORRIDOR_COLUMNS = ["osm_id", "street_name", "highway", "geometry"]


class CorridorResolver(Protocol):
    def resolve(self, bbox: BoundingBox, name_filter: str) -> gpd.GeoDataFrame:
        """Return matching road lines in the planar frame."""


_REGEX_SPECIAL = re.compile(r"([.\[\]{}()\\*+?^$|])")


def _overpass_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def escape_name_pattern(name_filter: str) -> str:
    """Regex-escape a street name for an Overpass ``~`` filter, then quote-escape it."""
    return _overpass_string(_REGEX_SPECIAL.sub(r"\\\1", name_filter.strip()))


def build_corridor_query(bbox: BoundingBox, name_filter: str, timeout_seconds: int = 180) -> str:
    # Substring match: honorific prefixes ("DuSable Lake Shore Drive") must still hit.
    pattern = escape_name_pattern(name_filter)
    return (
        f"[out:json][timeout:{int(timeout_seconds)}];\n"
        "(\n"
        f'  way["highway"]["name"~"{pattern}",i]({bbox.overpass_clause()});\n'
        ");\n"
        "out tags geom;"
    )


def _empty_corridor_frame(crs) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame({col: [] for col in CORRIDOR_COLUMNS[:-1]}, geometry=[], crs=crs)


def normalise_corridor_lines(frame: gpd.GeoDataFrame, name_filter: str, planar_epsg: int) -> gpd.GeoDataFrame:
    """Keep line features whose name contains the filter, renamed and in the planar frame."""
    if frame.empty:
        return to_planar(_empty_corridor_frame(frame.crs or f"EPSG:{GEOGRAPHIC_EPSG}"), planar_epsg)

    out = frame.rename(columns={"name": "street_name"}) if "name" in frame.columns else frame.copy()
    if "street_name" not in out.columns:
        out["street_name"] = None
    names = out["street_name"].fillna("").astype(str)
    mask = names.str.contains(name_filter.strip(), case=False, regex=False)
    mask &= out.geometry.geom_type.isin(["LineString", "MultiLineString"])
    out = out.loc[mask].copy()
    for col in CORRIDOR_COLUMNS[:-1]:
        if col not in out.columns:
            out[col] = None
    out = out[CORRIDOR_COLUMNS].reset_index(drop=True)
    return to_planar(out, planar_epsg)


def corridor_lines_from_payload(payload: dict) -> gpd.GeoDataFrame:
    rows: list[dict] = []
    geometries: list[LineString] = []
    seen_ids: set[str] = set()
    for element in payload.get("elements", []):
        if element.get("type") != "way":
            continue
        osm_id = f"way/{element.get('id')}"
        if osm_id in seen_ids:
            continue
        points = [
            (float(node["lon"]), float(node["lat"]))
            for node in element.get("geometry") or []
            if node and node.get("lon") is not None and node.get("lat") is not None
        ]
        if len(points) < 2:
            continue
        seen_ids.add(osm_id)
        tags = element.get("tags") or {}
        rows.append({"osm_id": osm_id, "name": tags.get("name"), "highway": tags.get("highway")})
        geometries.append(LineString(points))

    if not rows:
        return gpd.GeoDataFrame({"osm_id": [], "name": [], "highway": []}, geometry=[], crs=f"EPSG:{GEOGRAPHIC_EPSG}")
    return gpd.GeoDataFrame(rows, geometry=geometries, crs=f"EPSG:{GEOGRAPHIC_EPSG}")


class OverpassCorridorResolver:
    def __init__(
        self,
        settings: OverpassSettings,
        planar_epsg: int,
        *,
        http_client: HttpClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.planar_epsg = planar_epsg
        self.http_client = http_client
        self.logger = logger or get_stage_logger()

    def _fetch(self, query: str) -> dict:
        owns_client = self.http_client is None
        client = self.http_client or HttpClient(
            timeout=TimeoutConfig(connect=20, read=float(self.settings.timeout_seconds) + 30),
            retry=RetryConfig(max_attempts=self.settings.max_attempts),
        )
        try:
            return client.post_form_json(
                self.settings.endpoint,
                source_type="overpass",
                data={"data": query},
                timeout=TimeoutConfig(connect=20, read=float(self.settings.timeout_seconds) + 30),
            )
        finally:
            if owns_client:
                client.close()

    def resolve(self, bbox: BoundingBox, name_filter: str) -> gpd.GeoDataFrame:
        query = build_corridor_query(bbox, name_filter, self.settings.timeout_seconds)
        started = time.monotonic()
        try:
            payload = self._fetch(query)
        except HttpRequestError as exc:
            raise CorridorResolutionError(
                f"Overpass query for '{name_filter}' at {self.settings.endpoint} failed: {exc}"
            ) from exc

        remark = str(payload.get("remark") or "")
        if "error" in remark.lower():
            raise CorridorResolutionError(f"Overpass reported an error for '{name_filter}': {remark}")

        lines = normalise_corridor_lines(corridor_lines_from_payload(payload), name_filter, self.planar_epsg)
        log_event(
            self.logger,
            f"resolved corridor '{name_filter}'",
            stage="resolve_corridor",
            source="overpass",
            event="CORRIDOR_RESOLVED",
            status="ok" if len(lines) else "empty",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_out=len(lines),
        )
        return lines


class StaticCorridorResolver:
    """Resolver double serving fixed lines; no network."""

    def __init__(self, lines: gpd.GeoDataFrame, planar_epsg: int) -> None:
        self.lines = lines
        self.planar_epsg = planar_epsg
        self.calls: list[tuple[BoundingBox, str]] = []

    def resolve(self, bbox: BoundingBox, name_filter: str) -> gpd.GeoDataFrame:
        self.calls.append((bbox, name_filter))
        return normalise_corridor_lines(self.lines, name_filter, self.planar_epsg)
