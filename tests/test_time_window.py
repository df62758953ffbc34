"""Filter window clipping and calendar range."""

from datetime import timedelta

from conftest import BASE_TIME
from lwanalyzer.analytics.time_window import (
    FilterWindow,
    apply_filter_window,
    calc_time_range,
)


class TestFilterWindow:

    def test_exclusive_start_drops_boundary(self, make_record):
        records = [make_record(0), make_record(10), make_record(20)]
        window = FilterWindow(start=BASE_TIME + timedelta(minutes=10))
        result = apply_filter_window(records, window)
        assert [r.time for r in result.records] == [records[2].time]
        assert result.excluded_count == 2

    def test_inclusive_start_keeps_boundary(self, make_record):
        records = [make_record(0), make_record(10), make_record(20)]
        window = FilterWindow(start=BASE_TIME + timedelta(minutes=10), inclusive_start=True)
        assert len(apply_filter_window(records, window).records) == 2

    def test_end_bounds(self, make_record):
        records = [make_record(0), make_record(10), make_record(20)]
        end = BASE_TIME + timedelta(minutes=10)
        assert len(apply_filter_window(records, FilterWindow(end=end)).records) == 1
        assert len(apply_filter_window(records, FilterWindow(end=end, inclusive_end=True)).records) == 2

    def test_open_window_keeps_everything(self, make_record):
        records = [make_record(0), make_record(10, uplink=False)]
        result = apply_filter_window(records, FilterWindow())
        assert result.records == records
        assert result.excluded_count == 0

    def test_excluded_accounting(self, make_record):
        records = [make_record(m) for m in range(0, 300, 7)]
        window = FilterWindow(
            start=BASE_TIME + timedelta(minutes=50),
            end=BASE_TIME + timedelta(minutes=200),
        )
        result = apply_filter_window(records, window)
        assert result.excluded_count == len(records) - len(result.records)
        assert all(window.contains(r.time) for r in result.records)

    def test_does_not_modify_input(self, make_record):
        records = [make_record(0), make_record(10)]
        apply_filter_window(records, FilterWindow(start=BASE_TIME + timedelta(minutes=5)))
        assert len(records) == 2


class TestFromOptions:

    def test_camel_case_and_iso_strings(self):
        window = FilterWindow.from_options({
            "start": "2024-05-01T00:00:00Z",
            "end": "2024-05-02T00:00:00+02:00",
            "inclusiveStart": True,
        })
        assert window.start == BASE_TIME
        assert window.end == BASE_TIME + timedelta(hours=22)
        assert window.inclusive_start is True
        assert window.inclusive_end is False

    def test_unparseable_date_opens_the_bound(self, caplog):
        window = FilterWindow.from_options({"start": "yesterday-ish"})
        assert window.start is None
        assert window.is_open
        assert "unparseable filter start" in caplog.text

    def test_none(self):
        assert FilterWindow.from_options(None).is_open

    def test_to_dict_echoes_excluded(self):
        data = FilterWindow(start=BASE_TIME).to_dict(excluded=3)
        assert data["start"] == "2024-05-01T00:00:00.000Z"
        assert data["end"] is None
        assert data["excluded"] == 3


class TestTimeRange:

    def test_dates_cover_every_day(self, make_record):
        records = [make_record(60, days=2), make_record(1380), make_record(30, days=1)]
        time_range = calc_time_range(records)
        assert time_range.dates == ["2024-05-01", "2024-05-02", "2024-05-03"]
        assert time_range.to_dict()["days"] == 3

    def test_empty(self):
        time_range = calc_time_range([])
        assert time_range.dates == []
        assert time_range.to_dict() == {"start": None, "end": None, "days": 0}
