"""Run identifier helpers."""

from __future__ import annotations

import re
from datetime import datetime, timezone

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def slugify(value: str) -> str:
    slug = _SLUG_RE.sub("_", value.strip().lower()).strip("_")
    return slug or "unnamed"
