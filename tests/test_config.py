"""Config file loading, option validation, errors and the CLI."""

import json

import pytest

from lwanalyzer import main as cli
from lwanalyzer.analytics.classification import MetricKey
from lwanalyzer.analytics.config import Config, reload_config
from lwanalyzer.analytics.errors import (
    AnalyticsError,
    ErrorCode,
    error_result,
    error_result_from_exception,
    exit_status_for,
)
from lwanalyzer.analytics.validation import (
    ValidationError,
    validate_bool,
    validate_datetime,
    validate_positive_float,
    validate_positive_int,
    validate_string_choice,
)
from lwanalyzer.config import DEFAULT_CONFIG, load_config, options_from_config

EXPORT = (
    "Received,Device Name,Type,DevAddr,MAC,FCnt,Frequency,U/L RSSI,U/L SNR\n"
    "2024-05-01 00:00:00,alpha,Unconfirmed_Up,A1,gw-1,1,868.1,-100,5\n"
    "2024-05-01 00:10:00,alpha,Unconfirmed_Up,A1,gw-1,2,868.1,-100,5\n"
    "2024-05-01 00:20:00,alpha,Unconfirmed_Up,A1,gw-1,4,868.1,-100,5\n"
    "2024-05-02 00:00:00,beta,Unconfirmed_Up,B2,gw-2,7,868.3,-90,6\n"
)


@pytest.fixture(autouse=True)
def no_config_env(monkeypatch):
    monkeypatch.delenv("LWA_CONFIG", raising=False)


# ── Config file ──────────────────────────────────────────────────────

class TestLoadConfig:

    def test_defaults_without_file(self, monkeypatch):
        monkeypatch.setattr("lwanalyzer.config.DEFAULT_CONFIG_PATH", "/nonexistent/config.yaml")
        config = load_config()
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_deep_merge(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "logging:\n  level: DEBUG\n"
            "analysis:\n  gap_threshold_minutes: 90\n  daily_fill:\n    enabled: false\n"
        )
        config = load_config(str(path))
        assert config["logging"]["level"] == "DEBUG"
        assert config["logging"]["format"] == DEFAULT_CONFIG["logging"]["format"]
        assert config["analysis"]["gap_threshold_minutes"] == 90
        assert config["analysis"]["daily_fill"]["enabled"] is False
        assert "expected_baseline" in config["analysis"]["daily_fill"]

    def test_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("input:\n  timezone: Europe/Berlin\n")
        monkeypatch.setenv("LWA_CONFIG", str(path))
        assert load_config()["input"]["timezone"] == "Europe/Berlin"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("analysis: [unclosed\n")
        with pytest.raises(ValidationError):
            load_config(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError) as exc:
            load_config(str(tmp_path / "missing.yaml"))
        assert exc.value.parameter == "config"

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValidationError):
            load_config(str(path))


class TestOptionsFromConfig:

    def _config(self, **analysis):
        config = json.loads(json.dumps(DEFAULT_CONFIG))
        for key, value in analysis.items():
            if isinstance(value, dict):
                config["analysis"][key].update(value)
            else:
                config["analysis"][key] = value
        return config

    def test_defaults(self):
        options = options_from_config(self._config())
        assert options.filter_window.is_open
        assert options.gap_threshold_minutes is None
        assert [r.metric for r in options.classification.rules] == [MetricKey.LOSS_RATE]
        assert options.daily_fill.enabled is True

    def test_thresholds_build_rules(self):
        options = options_from_config(self._config(
            gap_threshold_minutes=60,
            classification={"loss_rate_threshold": 10, "reset_threshold": 2, "inactive_since_minutes": 120},
        ))
        assert options.gap_threshold_minutes == 60
        assert [r.metric for r in options.classification.rules] == [
            MetricKey.RESET_COUNT, MetricKey.MAX_GAP, MetricKey.INACTIVE_SINCE, MetricKey.LOSS_RATE,
        ]

    def test_explicit_rules(self):
        options = options_from_config(self._config(classification={
            "rules": [{"metric": "avgSNR", "op": "<", "value": -15, "category": "abnormal"}],
        }))
        assert len(options.classification.rules) == 1
        assert options.classification.rules[0].metric == MetricKey.AVG_SNR

    def test_window_and_fill(self):
        options = options_from_config(self._config(
            filter_window={"start": "2024-05-01T00:00:00Z", "inclusive_start": "yes"},
            daily_fill={"expected_baseline": "FIXED", "fixed_expected": 96},
        ))
        assert options.filter_window.inclusive_start is True
        assert options.daily_fill.expected_baseline == "fixed"
        assert options.daily_fill.fixed_expected == 96

    @pytest.mark.parametrize("analysis, parameter", [
        ({"gap_threshold_minutes": "soon"}, "gap_threshold_minutes"),
        ({"filter_window": {"start": "2024-13-01"}}, "filter_window.start"),
        ({"filter_window": {"start": "2024-05-02T00:00:00Z", "end": "2024-05-01T00:00:00Z"}}, "filter_window"),
        ({"daily_fill": {"expected_baseline": "mean"}}, "daily_fill.expected_baseline"),
        ({"daily_fill": {"min_expected": 0}}, "daily_fill.min_expected"),
        ({"classification": {"reset_threshold": -1}}, "classification.reset_threshold"),
        ({"classification": {"rules": "lossRate > 5"}}, "classification.rules"),
    ])
    def test_invalid_values(self, analysis, parameter):
        with pytest.raises(ValidationError) as exc:
            options_from_config(self._config(**analysis))
        assert exc.value.parameter == parameter


# ── Validation helpers and errors ────────────────────────────────────

class TestValidation:

    def test_positive_int(self):
        assert validate_positive_int("5", "n") == 5
        assert validate_positive_int(None, "n", default=3) == 3
        with pytest.raises(ValidationError):
            validate_positive_int(True, "n")
        with pytest.raises(ValidationError):
            validate_positive_int(0, "n")

    def test_positive_float(self):
        assert validate_positive_float("2.5", "x") == 2.5
        with pytest.raises(ValidationError):
            validate_positive_float("nan", "x")
        with pytest.raises(ValidationError):
            validate_positive_float(101, "x", max_value=100)

    def test_bool_and_choice(self):
        assert validate_bool("No", "b", default=True) is False
        assert validate_bool(None, "b", default=True) is True
        assert validate_string_choice("Fixed", "c", ["fixed", "median"]) == "fixed"
        with pytest.raises(ValidationError):
            validate_bool("maybe", "b")

    def test_datetime(self):
        assert validate_datetime(None, "t") is None
        assert validate_datetime("2024-05-01T00:00:00Z", "t").tzinfo is not None
        with pytest.raises(ValidationError):
            validate_datetime(None, "t", required=True)


class TestErrors:

    def test_validation_error_payload(self):
        payload = error_result_from_exception(ValidationError("gap", "must be a number", "x"))
        assert payload["success"] is False
        assert payload["error"]["code"] == "INVALID_PARAMETER"
        assert payload["error"]["details"] == {"parameter": "gap", "value": "x"}

    def test_analytics_error_payload(self):
        exc = AnalyticsError(ErrorCode.INVALID_INPUT, "no header")
        assert error_result_from_exception(exc)["error"]["exitStatus"] == 3
        assert str(exc) == "[INVALID_INPUT] no header"

    def test_exit_status(self):
        assert exit_status_for(ValidationError("a", "b")) == 2
        assert exit_status_for(AnalyticsError(ErrorCode.INVALID_INPUT, "x")) == 3
        assert exit_status_for(RuntimeError("boom")) == 1
        assert error_result(ErrorCode.INTERNAL_ERROR)["error"]["message"] == "An internal error occurred"


class TestEnvOverrides:

    def test_reload_config(self, monkeypatch):
        monkeypatch.setenv("LWA_FILL_MIN_EXPECTED", "4")
        monkeypatch.setenv("LWA_GAP_DEFAULT_THRESHOLD_MINUTES", "not-a-number")
        try:
            reload_config()
            assert Config.FILL.MIN_EXPECTED == 4
            assert Config.GAP.DEFAULT_THRESHOLD_MINUTES == 0.0
        finally:
            monkeypatch.delenv("LWA_FILL_MIN_EXPECTED")
            monkeypatch.delenv("LWA_GAP_DEFAULT_THRESHOLD_MINUTES")
            reload_config()
        assert Config.FILL.MIN_EXPECTED == 1


# ── CLI ──────────────────────────────────────────────────────────────

class TestCli:

    @pytest.fixture
    def export(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_text(EXPORT)
        return path

    def test_writes_json(self, export, tmp_path):
        out = tmp_path / "out.json"
        with pytest.raises(SystemExit) as exc:
            cli.main(["--input", str(export), "--output", str(out), "--loss-threshold", "10",
                      "--log-level", "WARNING"])
        assert exc.value.code == 0

        data = json.loads(out.read_text())
        analytics = data["analytics"]
        assert [n["id"]["deviceName"] for n in analytics["perNode"]] == ["alpha", "beta"]
        assert analytics["threshold"]["total"]["abnormal"] == ["alpha"]
        assert analytics["meta"]["counts"]["input"] == 4
        assert len(data["records"]) == 4

    def test_no_records_and_no_fill(self, export, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--input", str(export), "--no-records", "--no-fill", "--log-level", "ERROR"])
        assert exc.value.code == 0
        data = json.loads(capsys.readouterr().out)
        assert "records" not in data
        assert data["analytics"]["meta"]["dailyFill"]["enabled"] is False

    def test_invalid_option_exit_status(self, export, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--input", str(export), "--start", "garbage", "--log-level", "ERROR"])
        assert exc.value.code == 2
        err = capsys.readouterr().err
        assert '"code": "INVALID_PARAMETER"' in err
        assert '"parameter": "filter_window.start"' in err

    def test_missing_input(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--log-level", "ERROR"])
        assert exc.value.code == 2
        assert "INVALID_PARAMETER" in capsys.readouterr().err

    def test_unreadable_input(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--input", str(tmp_path / "missing.csv"), "--log-level", "ERROR"])
        assert exc.value.code == 3
        assert "INVALID_INPUT" in capsys.readouterr().err
