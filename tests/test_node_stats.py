"""Per-device and fleet aggregation."""

import pytest

from lwanalyzer.analytics.global_stats import calc_global
from lwanalyzer.analytics.node_stats import aggregate_nodes, group_by_node
from lwanalyzer.analytics.usage import UsageCatalog


def _aggregate(records, gap=None):
    return aggregate_nodes(records, UsageCatalog.from_records(records), gap)


class TestGrouping:

    def test_first_seen_order_and_name(self, make_record):
        records = [
            make_record(0, addr="B", name="bravo"),
            make_record(1, addr="A", name="alpha"),
            make_record(2, addr="B", name="renamed"),
        ]
        groups = group_by_node(records)
        assert list(groups) == ["B", "A"]
        assert groups["B"]["name"] == "bravo"
        assert len(groups["B"]["records"]) == 2

    def test_display_name_falls_back_to_address(self, make_record):
        node = _aggregate([make_record(0, addr="0A0B", name="")])[0]
        assert node.id.display_name == "0A0B"


class TestNodeStat:

    def test_daily_segments_are_independent(self, sequence):
        records = sequence([10, 11, 12]) + sequence([1, 2], days=1)
        node = _aggregate(records)[0]
        assert node.total.reset_count == 1
        assert [d.reset_count for d in node.daily] == [0, 0]
        assert [d.date for d in node.daily] == ["2024-05-01", "2024-05-02"]
        assert node.timeline.reset_count == 1

    def test_quality_includes_records_without_counter(self, make_record):
        records = [make_record(0, fcnt=1, rssi=-100), make_record(5, rssi=-80, snr=None)]
        node = _aggregate(records)[0]
        assert node.total.avg_rssi == pytest.approx(-90)
        assert node.total.avg_snr == pytest.approx(5)
        assert node.total.rssi_samples == 2
        assert node.total.snr_samples == 1

    def test_no_quality_samples(self, make_record):
        node = _aggregate([make_record(0, fcnt=1, rssi=None, snr=None)])[0]
        assert node.total.avg_rssi is None
        assert node.total.to_dict()["avgRSSI"] is None

    def test_timeline_last_seen(self, make_record):
        records = [make_record(0, fcnt=1), make_record(30), make_record(10, fcnt=2)]
        node = _aggregate(records)[0]
        assert node.timeline.last_time == records[2].time
        assert node.timeline.last_seen == records[1].time

    def test_gap_fields_when_enabled(self, sequence):
        records = sequence([1, 2], step_minutes=90)
        node = _aggregate(records, gap=60)[0]
        data = node.total.to_dict()
        assert data["gapCount"] == 1
        assert data["maxGapMinutes"] == 90
        assert node.daily[0].max_gap_minutes == 90

    def test_gap_fields_absent_when_disabled(self, sequence):
        node = _aggregate(sequence([1, 2], step_minutes=90))[0]
        assert "gapCount" not in node.total.to_dict()
        assert node.total.max_gap_minutes == -1

    def test_to_dict_keys(self, sequence):
        data = _aggregate(sequence([1, 2, 4]))[0].to_dict()
        assert set(data) == {"id", "total", "timeline", "daily"}
        assert data["id"] == {"deviceName": "node-0001", "deviceAddress": "0001"}
        day = data["daily"][0]
        assert day["date"] == "2024-05-01"
        assert day["noData"] is False
        assert day["expectedSource"] == "fcnt"
        assert day["lostCount"] == 1
        assert day["frequencyCounts"] == {"868.1": 3}


class TestGlobal:

    def test_fleet_rerun_is_not_a_sum(self, sequence):
        a = sequence([1, 2, 3, 4], addr="A")
        b = sequence([100, 101, 102, 103], addr="B", start_minutes=5)
        records = a + b
        catalog = UsageCatalog.from_records(records)
        nodes = aggregate_nodes(records, catalog)
        fleet = calc_global(records, catalog)

        assert sum(n.total.reset_count for n in nodes) == 0
        assert fleet.total.reset_count == 3
        assert fleet.total.node_count == 2
        assert fleet.total.total_with_duplicates == 8

    def test_catalog_reported_on_total(self, make_record):
        records = [make_record(0, addr="A", freq=868.3), make_record(1, addr="B", freq=868.1, gateways=("gw-9",))]
        catalog = UsageCatalog.from_records(records)
        fleet = calc_global(records, catalog)
        assert fleet.total.usage.frequencies_used == [868.1, 868.3]
        assert fleet.total.usage.gateways_used == ["gw-1", "gw-9"]

    def test_daily_distinct_devices(self, make_record):
        records = [make_record(0, addr="A"), make_record(1, addr="B"), make_record(0, addr="A", days=1)]
        fleet = calc_global(records, UsageCatalog.from_records(records))
        assert [(d.date, d.nodes_with_data_count) for d in fleet.daily] == [
            ("2024-05-01", 2),
            ("2024-05-02", 1),
        ]
        assert all(d.nodes_total_count == 2 for d in fleet.daily)

    def test_empty(self):
        fleet = calc_global([], UsageCatalog())
        assert fleet.total.node_count == 0
        assert fleet.total.loss_rate_percent == -1
        assert fleet.daily == []
