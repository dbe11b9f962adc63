# =============================================================================
# cpd_core/analytics/__init__.py
# CPD Analytics
# =============================================================================

from .cpd_stats import (
    ACTIVITY_TYPES,
    CPDStats,
    StatsCache,
    apportion_rounded,
    compute_cpd_stats,
    entries_to_frame,
    months_between,
    round_half_up,
)

__all__ = [
    "ACTIVITY_TYPES",
    "CPDStats",
    "StatsCache",
    "apportion_rounded",
    "compute_cpd_stats",
    "entries_to_frame",
    "months_between",
    "round_half_up",
]
