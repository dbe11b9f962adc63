# =============================================================================
# cpd_core/analytics/cpd_stats.py
# CPD Statistics Aggregation
# =============================================================================
"""
Derived CPD statistics.

``compute_cpd_stats`` is a pure function of the entry list: no I/O and no
mutation. Sums are taken on unrounded values and rounded once when the
CPDStats container is built (half-up, one decimal for hours, whole numbers
for percentages).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

import pandas as pd

from cpd_core.config.settings import REQUIRED_ANNUAL_HOURS
from cpd_core.models.categories import CATEGORY_IDS
from cpd_core.models.entry import ActivityType, CPDEntry

ACTIVITY_TYPES: List[str] = [t.value for t in ActivityType]

ENTRY_COLUMNS = [
    "id", "title", "type", "duration", "date", "description",
    "learning_outcomes", "nmc_categories", "evidence_count", "has_transcript",
    "sync_state", "is_starred", "created_at", "updated_at",
]


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class CPDStats:
    """Rolled-up CPD statistics for one point in time."""
    total_hours: float = 0.0
    entries_count: int = 0
    hours_this_year: float = 0.0
    hours_last_year: float = 0.0
    average_hours_per_month: float = 0.0
    type_distribution: Dict[str, float] = field(
        default_factory=lambda: {t: 0.0 for t in ACTIVITY_TYPES}
    )
    hours_by_category: Dict[str, float] = field(
        default_factory=lambda: {c: 0.0 for c in CATEGORY_IDS}
    )
    compliance_percentage: int = 0
    hours_needed: float = REQUIRED_ANNUAL_HOURS
    required_annual_hours: float = REQUIRED_ANNUAL_HOURS

    def to_dict(self) -> Dict:
        return {
            "total_hours": self.total_hours,
            "entries_count": self.entries_count,
            "hours_this_year": self.hours_this_year,
            "hours_last_year": self.hours_last_year,
            "average_hours_per_month": self.average_hours_per_month,
            "type_distribution": dict(self.type_distribution),
            "hours_by_category": dict(self.hours_by_category),
            "compliance_percentage": self.compliance_percentage,
            "hours_needed": self.hours_needed,
            "required_annual_hours": self.required_annual_hours,
        }


# =============================================================================
# HELPERS
# =============================================================================

def round_half_up(value: float, places: int = 1) -> float:
    """Round like a person would: 2.25 -> 2.3, 0.5 -> 1."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def apportion_rounded(values: Dict[str, float], total: float, places: int = 1) -> Dict[str, float]:
    """
    Round each part so the parts add up to the already rounded ``total``.

    Every part is floored to ``places`` decimals and the units still missing
    go to the parts with the largest remainders (earlier keys win ties).
    """
    quantum = Decimal(1).scaleb(-places)
    exact = {k: Decimal(repr(float(v))) for k, v in values.items()}
    floors = {k: v.quantize(quantum, rounding=ROUND_FLOOR) for k, v in exact.items()}

    missing = (Decimal(repr(float(total))) - sum(floors.values(), Decimal(0))) / quantum
    units = max(0, min(len(floors), int(missing.to_integral_value(rounding=ROUND_HALF_UP))))

    by_remainder = sorted(exact, key=lambda k: exact[k] - floors[k], reverse=True)
    for key in by_remainder[:units]:
        floors[key] += quantum
    return {k: float(floors[k]) for k in values}


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months from ``start`` to ``end``."""
    start = start.astimezone(timezone.utc)
    end = end.astimezone(timezone.utc)
    return (end.year - start.year) * 12 + (end.month - start.month)


def entries_to_frame(entries: Sequence[CPDEntry]) -> pd.DataFrame:
    """Flatten entries into a DataFrame (one row per entry)."""
    if not entries:
        return pd.DataFrame(columns=ENTRY_COLUMNS)

    return pd.DataFrame([
        {
            "id": e.id,
            "title": e.title,
            "type": e.type.value,
            "duration": float(e.duration),
            "date": e.date,
            "description": e.description,
            "learning_outcomes": list(e.learning_outcomes),
            "nmc_categories": list(e.nmc_categories),
            "evidence_count": len(e.evidence),
            "has_transcript": e.transcript is not None,
            "sync_state": e.sync_state.value,
            "is_starred": e.is_starred,
            "created_at": e.created_at,
            "updated_at": e.updated_at,
        }
        for e in entries
    ], columns=ENTRY_COLUMNS)


# =============================================================================
# AGGREGATION
# =============================================================================

def compute_cpd_stats(
    entries: Sequence[CPDEntry],
    now: Optional[datetime] = None,
    required_annual_hours: float = REQUIRED_ANNUAL_HOURS,
) -> CPDStats:
    """
    Compute CPD statistics from a reconciled entry list.

    Args:
        entries: Entries to aggregate
        now: Reference time (default: current UTC time); "this year" is now.year
        required_annual_hours: Annual hour target for compliance

    Returns:
        CPDStats with every activity type and NMC category present
    """
    if required_annual_hours <= 0:
        raise ValueError("required_annual_hours must be positive")

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    df = entries_to_frame(entries)
    if df.empty:
        return CPDStats(
            hours_needed=round_half_up(required_annual_hours),
            required_annual_hours=required_annual_hours,
        )

    years = df["date"].map(lambda d: d.year)
    total = float(df["duration"].sum())
    this_year = float(df.loc[years == now.year, "duration"].sum())
    last_year = float(df.loc[years == now.year - 1, "duration"].sum())

    by_type = (
        df.groupby("type")["duration"].sum()
        .reindex(ACTIVITY_TYPES, fill_value=0.0)
    )

    # An entry tagged with several categories counts toward each of them
    tagged = df[["nmc_categories", "duration"]].explode("nmc_categories").dropna()
    by_category = (
        tagged.groupby("nmc_categories")["duration"].sum()
        .reindex(list(CATEGORY_IDS), fill_value=0.0)
    )

    first_created = min(e.created_at for e in entries)
    months = max(1, months_between(first_created, now))
    average = total / months

    compliance = min(100, int(round_half_up(this_year / required_annual_hours * 100, 0)))
    needed = max(0.0, required_annual_hours - this_year)

    total_hours = round_half_up(total)
    # Per-type hours add up to total_hours
    distribution = apportion_rounded({t: float(by_type[t]) for t in ACTIVITY_TYPES}, total_hours)

    return CPDStats(
        total_hours=total_hours,
        entries_count=len(df),
        hours_this_year=round_half_up(this_year),
        hours_last_year=round_half_up(last_year),
        average_hours_per_month=round_half_up(average),
        type_distribution=distribution,
        hours_by_category={c: round_half_up(by_category[c]) for c in CATEGORY_IDS},
        compliance_percentage=compliance,
        hours_needed=round_half_up(needed),
        required_annual_hours=required_annual_hours,
    )


class StatsCache:
    """
    Holds the most recent CPDStats until the entry set changes.

    ``invalidate`` bumps a generation counter; a result computed against an
    older generation is discarded by ``store``.
    """

    def __init__(self):
        self._stats: Optional[CPDStats] = None
        self._computed_on: Optional[date] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def get(self, today: date) -> Optional[CPDStats]:
        if self._stats is not None and self._computed_on == today:
            return self._stats
        return None

    def store(self, stats: CPDStats, generation: int, today: date) -> None:
        if generation != self._generation:
            return
        self._stats = stats
        self._computed_on = today

    def invalidate(self) -> None:
        self._generation += 1
        self._stats = None
        self._computed_on = None
