"""Grouped summary statistics over classified, costed records."""

from __future__ import annotations

import pandas as pd

from district_crashes.common.constants import VICTIM_ROLES
from district_crashes.pipeline.damages import DAMAGE_COLUMN

ALL_SCOPE = "ALL"

SUMMARY_COLUMNS = [
    "total_crashes",
    "crashes_with_injuries",
    "sum_injuries",
    "sum_injuries_incapacitating",
    "pedestrian_crashes",
    "cyclist_crashes",
    "hit_and_run_crashes",
    "injuries_in_hit_and_run",
    "total_fatalities",
    "total_cyclist_fatalities",
    "total_driver_fatalities",
    "total_passenger_fatalities",
    "total_pedestrian_fatalities",
    "total_motorcyclist_fatalities",
    "total_scooter_fatalities",
    DAMAGE_COLUMN,
]

_FATALITY_BY_VICTIM = {f"total_{role.lower()}_fatalities": role for role in VICTIM_ROLES}


def _numeric(records: pd.DataFrame, column: str) -> pd.Series:
    if column not in records.columns:
        return pd.Series(0.0, index=records.index)
    return pd.to_numeric(records[column], errors="coerce").astype(float)


def _text(records: pd.DataFrame, column: str) -> pd.Series:
    if column not in records.columns:
        return pd.Series(pd.NA, index=records.index, dtype="string")
    return records[column].astype("string")


def _equals(values: pd.Series, target: str) -> pd.Series:
    return (values == target).fillna(False).astype(int)


def statistic_columns(records: pd.DataFrame) -> pd.DataFrame:
    """Per-record contributions whose column sums are the summary statistics.

    Nulls contribute zero, so a plain sum is NA-safe.
    """
    injuries = _numeric(records, "injuries_total")
    crash_type = _text(records, "first_crash_type")
    victim = _text(records, "fatality_victim")
    if "hit_and_run" in records.columns:
        hit_and_run = records["hit_and_run"].astype("boolean").fillna(False).astype(int)
    else:
        hit_and_run = pd.Series(0, index=records.index)

    stats = pd.DataFrame(index=records.index)
    stats["total_crashes"] = _numeric(records, "crash_count").fillna(0)
    stats["crashes_with_injuries"] = (injuries > 0).astype(int)
    stats["sum_injuries"] = injuries.fillna(0)
    stats["sum_injuries_incapacitating"] = _numeric(records, "injuries_incapacitating").fillna(0)
    stats["pedestrian_crashes"] = _equals(crash_type, "PEDESTRIAN")
    stats["cyclist_crashes"] = _equals(crash_type, "PEDALCYCLIST")
    stats["hit_and_run_crashes"] = hit_and_run
    stats["injuries_in_hit_and_run"] = injuries.fillna(0) * hit_and_run
    stats["total_fatalities"] = _numeric(records, "fatality_count").fillna(0)
    for column, role in _FATALITY_BY_VICTIM.items():
        stats[column] = _equals(victim, role)
    stats[DAMAGE_COLUMN] = _numeric(records, DAMAGE_COLUMN).fillna(0)
    return stats[SUMMARY_COLUMNS]


def _finalise(summary: pd.DataFrame) -> pd.DataFrame:
    for column in SUMMARY_COLUMNS:
        if column != DAMAGE_COLUMN:
            summary[column] = summary[column].round().astype(int)
        else:
            summary[column] = summary[column].astype(float)
    return summary


def summarize(records: pd.DataFrame, group_key: str | None = None) -> pd.DataFrame:
    """Roll records up by ``group_key``, or into a single ``ALL`` row.

    Groups with no records do not appear. Rows are sorted by key.
    """
    stats = statistic_columns(records)

    if group_key is None:
        totals = pd.DataFrame([stats.sum(axis=0).reindex(SUMMARY_COLUMNS, fill_value=0)])
        totals.insert(0, "scope", ALL_SCOPE)
        return _finalise(totals.reset_index(drop=True))

    if group_key not in records.columns:
        raise KeyError(f"cannot group by {group_key}: column not present")
    keys = records[group_key].astype("string")
    stats = stats.loc[keys.notna()]
    grouped = stats.groupby(keys.loc[keys.notna()].rename(group_key), sort=True).sum()
    summary = grouped.reset_index()
    summary[group_key] = summary[group_key].astype(str)
    summary = summary[[group_key, *SUMMARY_COLUMNS]]
    return _finalise(_sort_keys(summary, group_key))


def _sort_keys(summary: pd.DataFrame, group_key: str) -> pd.DataFrame:
    # Numeric district ids sort numerically ("2" before "10").
    numeric = pd.to_numeric(summary[group_key], errors="coerce")
    order = summary.assign(_numeric=numeric).sort_values(["_numeric", group_key], na_position="last")
    return order.drop(columns="_numeric").reset_index(drop=True)
