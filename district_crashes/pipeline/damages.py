"""Per-record economic damage estimates."""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from district_crashes.common.errors import ConfigError
from district_crashes.common.logging import get_stage_logger, log_event
from district_crashes.common.models import DamageCosts

DAMAGE_COLUMN = "estimated_economic_damages"


def _positive_count(values: pd.Series) -> pd.Series:
    counts = pd.to_numeric(values, errors="coerce").astype(float)
    return counts.where(counts > 0, 0.0).fillna(0.0)


def severity_counts(records: pd.DataFrame) -> pd.DataFrame:
    """Derived counts the cost models read; nulls and negatives count as zero."""

    def column(name: str) -> pd.Series:
        if name in records.columns:
            return records[name]
        return pd.Series(np.nan, index=records.index)

    return pd.DataFrame(
        {
            "fatality_count": _positive_count(column("fatality_count")),
            "incapacitating_injury_count": _positive_count(column("injuries_incapacitating")),
            "injury_count": _positive_count(column("injuries_total")),
            "crash_count": _positive_count(column("crash_count")),
        },
        index=records.index,
    )


def tiered_damages(counts: pd.DataFrame, costs: DamageCosts) -> pd.Series:
    # Tiers are exclusive; the first matching condition wins.
    conditions = [
        counts["fatality_count"] > 0,
        counts["incapacitating_injury_count"] > 0,
        counts["injury_count"] > 0,
        counts["crash_count"] == 1,
    ]
    choices = [
        costs.fatality * counts["fatality_count"] + costs.crash,
        costs.incapacitating_injury * counts["incapacitating_injury_count"] + costs.crash,
        costs.injury * counts["injury_count"],
        pd.Series(costs.crash, index=counts.index),
    ]
    return pd.Series(np.select(conditions, choices, default=0.0), index=counts.index, dtype=float)


def additive_damages(counts: pd.DataFrame, costs: DamageCosts) -> pd.Series:
    return (
        costs.crash * counts["crash_count"]
        + costs.injury * counts["injury_count"]
        + costs.incapacitating_injury * counts["incapacitating_injury_count"]
        + costs.fatality * counts["fatality_count"]
    ).astype(float)


DAMAGE_MODELS = {
    "tiered": tiered_damages,
    "additive": additive_damages,
}


def estimate_damage(
    *,
    fatality_count: float = 0,
    incapacitating_injury_count: float = 0,
    injury_count: float = 0,
    crash_count: float = 0,
    costs: DamageCosts | None = None,
) -> float:
    """Tiered estimate for a single record."""
    costs = costs or DamageCosts()
    if fatality_count and fatality_count > 0:
        return costs.fatality * fatality_count + costs.crash
    if incapacitating_injury_count and incapacitating_injury_count > 0:
        return costs.incapacitating_injury * incapacitating_injury_count + costs.crash
    if injury_count and injury_count > 0:
        return costs.injury * injury_count
    if crash_count == 1:
        return float(costs.crash)
    return 0.0


def apply_damages(
    records: pd.DataFrame,
    costs: DamageCosts,
    *,
    model: str = "tiered",
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """Copy of ``records`` with ``estimated_economic_damages`` filled in."""
    logger = logger or get_stage_logger()
    if model not in DAMAGE_MODELS:
        raise ConfigError(f"Unknown damage model: {model}")
    if model == "additive":
        log_event(
            logger,
            "additive damage model sums every severity tier; totals will exceed the tiered model",
            level=logging.WARNING,
            stage="damages",
            event="DAMAGE_MODEL_ADDITIVE",
            status="warning",
        )

    out = records.copy()
    out[DAMAGE_COLUMN] = DAMAGE_MODELS[model](severity_counts(out), costs).to_numpy()
    log_event(
        logger,
        f"estimated damages with the {model} model",
        stage="damages",
        event="DAMAGES_ESTIMATED",
        status="ok",
        rows_in=len(records),
        rows_out=len(out),
    )
    return out
