"""Missing-day backfill and the fleet daily rebuild."""

import pytest

from lwanalyzer.analytics.backfill import (
    BASELINE_FIXED,
    SOURCE_FIXED,
    SOURCE_MEDIAN,
    DailyFillPolicy,
    fill_missing_days,
    rebuild_global_daily,
)
from lwanalyzer.analytics.node_stats import aggregate_nodes
from lwanalyzer.analytics.usage import UsageCatalog

DATES = ["2024-05-01", "2024-05-02", "2024-05-03"]


@pytest.fixture
def gappy_fleet(sequence):
    """Node A silent on day 1 (expected 4 on day 0, 7 on day 2); node B every day."""
    records = (
        sequence([1, 2, 3, 4], addr="A", freq=868.1)
        + sequence([10, 11, 12, 13, 14, 15, 16], addr="B", freq=868.3)
        + sequence([20, 21], addr="B", days=1, freq=868.3)
        + sequence([10, 11, 12, 13, 14, 15, 16], addr="A", days=2, freq=868.1)
        + sequence([30], addr="B", days=2, freq=868.3)
    )
    catalog = UsageCatalog.from_records(records)
    return aggregate_nodes(records, catalog), catalog


class TestPolicy:

    def test_defaults(self):
        policy = DailyFillPolicy.from_options(None)
        assert policy.enabled is True
        assert policy.expected_baseline == "per-node-daily-median"
        assert policy.fixed_expected == 1
        assert policy.min_expected == 1

    def test_only_explicit_false_disables(self):
        assert DailyFillPolicy.from_options({"enabled": False}).enabled is False
        assert DailyFillPolicy.from_options({"enabled": 0}).enabled is True
        assert DailyFillPolicy.from_options({"enabled": None}).enabled is True

    def test_normalisation(self):
        policy = DailyFillPolicy.from_options({
            "expectedBaseline": "something-else",
            "fixedExpected": "abc",
            "minExpected": 2.7,
        })
        assert policy.expected_baseline == "per-node-daily-median"
        assert policy.fixed_expected == 1
        assert policy.min_expected == 2

    def test_to_dict(self):
        data = DailyFillPolicy(expected_baseline=BASELINE_FIXED, fixed_expected=96).to_dict()
        assert data == {
            "enabled": True,
            "mode": "no-data-100-loss",
            "expectedBaseline": "fixed",
            "fixedExpected": 96,
            "minExpected": 1,
        }


class TestFillMissingDays:

    def test_every_node_covers_every_date(self, gappy_fleet):
        nodes, catalog = gappy_fleet
        created = fill_missing_days(nodes, DATES, DailyFillPolicy(), catalog)
        assert created == 1
        for node in nodes:
            assert [d.date for d in node.daily] == DATES

    def test_median_baseline_is_floored(self, gappy_fleet):
        nodes, catalog = gappy_fleet
        fill_missing_days(nodes, DATES, DailyFillPolicy(), catalog)
        day = nodes[0].daily_for("2024-05-02")
        assert day.no_data is True
        assert day.expected_source == SOURCE_MEDIAN
        # median(4, 7) = 5.5
        assert day.expected_count == 5
        assert day.lost_count == 5
        assert day.unique_packet_count == 0
        assert day.loss_rate_percent == 100
        assert day.baseline_expected == 5
        assert day.avg_rssi is None
        assert day.frame_counter_span == -1

    def test_fixed_baseline(self, gappy_fleet):
        nodes, catalog = gappy_fleet
        policy = DailyFillPolicy(expected_baseline=BASELINE_FIXED, fixed_expected=96)
        fill_missing_days(nodes, DATES, policy, catalog)
        day = nodes[0].daily_for("2024-05-02")
        assert day.expected_count == 96
        assert day.expected_source == SOURCE_FIXED

    def test_min_expected_raises_baseline(self, gappy_fleet):
        nodes, catalog = gappy_fleet
        fill_missing_days(nodes, DATES, DailyFillPolicy(min_expected=10), catalog)
        assert nodes[0].daily_for("2024-05-02").expected_count == 10

    def test_no_samples_falls_back_to_fixed(self, make_record):
        records = [make_record(0, addr="A")]
        catalog = UsageCatalog.from_records(records)
        nodes = aggregate_nodes(records, catalog)
        fill_missing_days(nodes, DATES, DailyFillPolicy(fixed_expected=12), catalog)
        day = nodes[0].daily_for("2024-05-03")
        assert day.expected_count == 12
        assert day.expected_source == SOURCE_FIXED

    def test_synthetic_usage_is_zero_filled(self, gappy_fleet):
        nodes, catalog = gappy_fleet
        fill_missing_days(nodes, DATES, DailyFillPolicy(), catalog)
        data = nodes[0].daily_for("2024-05-02").to_dict()
        assert data["frequencyCounts"] == {"868.1": 0, "868.3": 0}
        assert data["noData"] is True
        assert data["expectedSource"] == "baseline-median"


class TestRebuildGlobalDaily:

    def test_sums_and_node_counts(self, gappy_fleet):
        nodes, catalog = gappy_fleet
        fill_missing_days(nodes, DATES, DailyFillPolicy(), catalog)
        daily = rebuild_global_daily(nodes, DATES, catalog)

        assert [d.date for d in daily] == DATES
        day1 = daily[1]
        assert day1.nodes_with_data_count == 1
        assert day1.nodes_total_count == 2
        # A synthetic 5 + B real 2
        assert day1.expected_count == 7
        assert day1.lost_count == 5
        assert day1.loss_rate_percent == pytest.approx(5 / 7 * 100)
        assert day1.usage.frequency_counts == {"868.1": 0, "868.3": 2}

    def test_quality_weighted_by_samples(self, make_record):
        records = [
            make_record(0, addr="A", fcnt=1, rssi=-100),
            make_record(1, addr="A", fcnt=2, rssi=-100),
            make_record(2, addr="B", fcnt=1, rssi=-70),
        ]
        catalog = UsageCatalog.from_records(records)
        nodes = aggregate_nodes(records, catalog)
        day = rebuild_global_daily(nodes, ["2024-05-01"], catalog)[0]
        assert day.avg_rssi == pytest.approx(-90)
        assert day.first_time == records[0].time
        assert day.last_time == records[2].time

    def test_day_without_entries(self, make_record):
        records = [make_record(0, addr="A", fcnt=1)]
        catalog = UsageCatalog.from_records(records)
        nodes = aggregate_nodes(records, catalog)
        day = rebuild_global_daily(nodes, ["2024-05-01", "2024-05-02"], catalog)[1]
        assert day.nodes_with_data_count == 0
        assert day.expected_count == 0
        assert day.loss_rate_percent == -1
        assert day.avg_rssi is None
