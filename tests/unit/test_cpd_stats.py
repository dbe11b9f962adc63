# =============================================================================
# tests/unit/test_cpd_stats.py
# Unit Tests for CPD Statistics
# =============================================================================

import pytest
from datetime import date, datetime, timezone

from conftest import build_entry

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestComputeStats:
    """Test statistics aggregation"""

    def test_empty_list(self):
        """No entries: zero totals, full requirement outstanding"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        stats = compute_cpd_stats([], now=NOW)

        assert stats.total_hours == 0
        assert stats.entries_count == 0
        assert stats.average_hours_per_month == 0
        assert stats.compliance_percentage == 0
        assert stats.hours_needed == 35
        assert set(stats.type_distribution) == {"course", "conference", "reflection", "mentoring", "other"}
        assert all(v == 0 for v in stats.type_distribution.values())

    def test_year_buckets(self, sample_entries):
        """Hours split by calendar year of the activity date"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        stats = compute_cpd_stats(sample_entries, now=NOW)

        assert stats.total_hours == 10.5
        assert stats.hours_this_year == 9.5
        assert stats.hours_last_year == 1.0
        assert stats.entries_count == 3

    def test_distribution_sums_to_total(self, sample_entries):
        """Every type present; distribution adds up to total hours"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        stats = compute_cpd_stats(sample_entries, now=NOW)

        assert stats.type_distribution == {
            "course": 3.0,
            "conference": 6.5,
            "reflection": 1.0,
            "mentoring": 0.0,
            "other": 0.0,
        }
        assert sum(stats.type_distribution.values()) == pytest.approx(stats.total_hours)

    def test_hours_by_category(self, sample_entries):
        """An entry counts toward each category it is tagged with"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        stats = compute_cpd_stats(sample_entries, now=NOW)

        assert stats.hours_by_category == {
            "prioritise_people": 0.0,
            "practise_effectively": 3.0,
            "preserve_safety": 3.0,
            "promote_professionalism": 6.5,
        }

    def test_distribution_sums_to_total_with_fractional_types(self):
        """Quarter hours across every type still add up to the rounded total"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats
        from cpd_core.models.entry import ActivityType

        entries = [
            build_entry(f"cpd_{i}_q", activity_type=t, duration=0.25, activity_date=date(2025, 2, 1))
            for i, t in enumerate(ActivityType)
        ]
        stats = compute_cpd_stats(entries, now=NOW)

        assert stats.total_hours == 1.3
        assert sum(stats.type_distribution.values()) == pytest.approx(1.3)
        assert sorted(stats.type_distribution.values()) == [0.2, 0.2, 0.3, 0.3, 0.3]

    def test_compliance_half_up(self):
        """17.5 of 35 hours is 50% with 17.5 still needed"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        stats = compute_cpd_stats([build_entry(duration=17.5, activity_date=date(2025, 1, 2))], now=NOW)

        assert stats.compliance_percentage == 50
        assert stats.hours_needed == 17.5

    def test_compliance_clamped_and_hours_needed_floor(self):
        """Over-achievement caps at 100% with nothing outstanding"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        entries = [
            build_entry(f"cpd_{i}_x", duration=20, activity_date=date(2025, 1, i + 1))
            for i in range(3)
        ]
        stats = compute_cpd_stats(entries, now=NOW)

        assert stats.hours_this_year == 60
        assert stats.compliance_percentage == 100
        assert stats.hours_needed == 0

    def test_average_per_month(self):
        """Total divided by whole months since the first entry was created"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        entries = [
            build_entry("cpd_a", duration=10, created_at=datetime(2025, 1, 20, tzinfo=timezone.utc)),
            build_entry("cpd_b", duration=2, created_at=datetime(2025, 5, 1, tzinfo=timezone.utc)),
        ]
        stats = compute_cpd_stats(entries, now=NOW)

        # January -> June is 5 calendar months
        assert stats.average_hours_per_month == 2.4

    def test_average_uses_at_least_one_month(self):
        """Entries created this month divide by one"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        entry = build_entry(duration=4, created_at=datetime(2025, 6, 1, tzinfo=timezone.utc))

        assert compute_cpd_stats([entry], now=NOW).average_hours_per_month == 4

    def test_rounding_happens_once(self):
        """Sums of unrounded values are rounded at output"""
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        entries = [
            build_entry(f"cpd_{i}_r", duration=0.25, activity_date=date(2025, 1, 1))
            for i in range(9)
        ]
        stats = compute_cpd_stats(entries, now=NOW)

        # 9 x 0.25 = 2.25 -> 2.3 (half-up)
        assert stats.total_hours == 2.3
        assert stats.type_distribution["course"] == 2.3

    def test_custom_requirement(self):
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        stats = compute_cpd_stats(
            [build_entry(duration=5, activity_date=date(2025, 3, 3))],
            now=NOW,
            required_annual_hours=10,
        )

        assert stats.compliance_percentage == 50
        assert stats.required_annual_hours == 10

    def test_non_positive_requirement_rejected(self):
        from cpd_core.analytics.cpd_stats import compute_cpd_stats

        with pytest.raises(ValueError):
            compute_cpd_stats([], now=NOW, required_annual_hours=0)


class TestRoundingHelpers:
    """Test rounding and month arithmetic"""

    @pytest.mark.parametrize("value,places,expected", [
        (2.25, 1, 2.3),
        (2.35, 1, 2.4),
        (0.5, 0, 1.0),
        (27.142857, 0, 27.0),
        (0.1 + 0.2, 1, 0.3),
    ])
    def test_round_half_up(self, value, places, expected):
        from cpd_core.analytics.cpd_stats import round_half_up

        assert round_half_up(value, places) == expected

    def test_apportion_rounded_largest_remainder(self):
        from cpd_core.analytics.cpd_stats import apportion_rounded

        parts = apportion_rounded({"a": 0.26, "b": 0.24, "c": 0.5}, 1.0)

        assert parts == {"a": 0.3, "b": 0.2, "c": 0.5}

    def test_months_between_ignores_day(self):
        from cpd_core.analytics.cpd_stats import months_between

        start = datetime(2024, 12, 31, tzinfo=timezone.utc)
        end = datetime(2025, 1, 1, tzinfo=timezone.utc)

        assert months_between(start, end) == 1


class TestStatsCache:
    """Test cache invalidation"""

    def test_store_and_get(self):
        from cpd_core.analytics.cpd_stats import CPDStats, StatsCache

        cache = StatsCache()
        stats = CPDStats(total_hours=3)
        cache.store(stats, cache.generation, date(2025, 6, 15))

        assert cache.get(date(2025, 6, 15)) is stats
        assert cache.get(date(2025, 6, 16)) is None

    def test_invalidate_clears(self):
        from cpd_core.analytics.cpd_stats import CPDStats, StatsCache

        cache = StatsCache()
        cache.store(CPDStats(), cache.generation, date(2025, 6, 15))
        cache.invalidate()

        assert cache.get(date(2025, 6, 15)) is None

    def test_stale_result_discarded(self):
        """A result computed before an invalidation is not stored"""
        from cpd_core.analytics.cpd_stats import CPDStats, StatsCache

        cache = StatsCache()
        generation = cache.generation
        cache.invalidate()
        cache.store(CPDStats(), generation, date(2025, 6, 15))

        assert cache.get(date(2025, 6, 15)) is None
