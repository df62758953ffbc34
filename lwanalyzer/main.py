import json
import logging
import sys

from lwanalyzer import __version__
from lwanalyzer.analytics.errors import (
    AnalyticsError,
    error_result_from_exception,
    exit_status_for,
)
from lwanalyzer.analytics.processor import build_analytics
from lwanalyzer.analytics.validation import ValidationError
from lwanalyzer.config import load_config, options_from_config, save_config
from lwanalyzer.data_acquisition import read_csv_records

logger = logging.getLogger("LWAnalyzer")


def _setup_logging(config: dict) -> None:
    log_level = config.get("logging", {}).get("level", "INFO")
    logging.basicConfig(
        level=getattr(logging, str(log_level).upper(), logging.INFO),
        format=config.get("logging", {}).get("format"),
        stream=sys.stderr,
    )


def _apply_overrides(config: dict, args) -> dict:
    """Fold command-line flags into the loaded config."""
    analysis = config.setdefault("analysis", {})
    window = analysis.setdefault("filter_window", {})
    classification = analysis.setdefault("classification", {})
    fill = analysis.setdefault("daily_fill", {})

    if args.log_level:
        config.setdefault("logging", {})["level"] = args.log_level
    if args.timezone:
        config.setdefault("input", {})["timezone"] = args.timezone
    if args.start:
        window["start"] = args.start
    if args.end:
        window["end"] = args.end
    if args.inclusive_start:
        window["inclusive_start"] = True
    if args.inclusive_end:
        window["inclusive_end"] = True
    if args.gap_minutes is not None:
        analysis["gap_threshold_minutes"] = args.gap_minutes
    if args.loss_threshold is not None:
        classification["loss_rate_threshold"] = args.loss_threshold
    if args.reset_threshold is not None:
        classification["reset_threshold"] = args.reset_threshold
    if args.inactive_minutes is not None:
        classification["inactive_since_minutes"] = args.inactive_minutes
    if args.no_fill:
        fill["enabled"] = False
    if args.fill_baseline:
        fill["expected_baseline"] = args.fill_baseline
    return config


def _write_error(exc: Exception) -> int:
    json.dump(error_result_from_exception(exc), sys.stderr, indent=2)
    sys.stderr.write("\n")
    return exit_status_for(exc)


def run(args) -> int:
    config = _apply_overrides(load_config(args.config), args)
    _setup_logging(config)

    options = options_from_config(config)

    if args.write_config:
        save_config(config, args.write_config)

    if not args.input:
        raise ValidationError("input", "an input CSV file is required (--input)")

    records = read_csv_records(args.input, timezone=config.get("input", {}).get("timezone"))
    container = build_analytics(records, options)
    payload = container.to_dict()
    if args.no_records:
        payload.pop("records")

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=args.indent, ensure_ascii=False)
        logger.info(f"Analytics written to {args.output}")
    else:
        json.dump(payload, sys.stdout, indent=args.indent, ensure_ascii=False)
        sys.stdout.write("\n")
    return 0


def main(argv=None):

    import argparse

    parser = argparse.ArgumentParser(description="LoRaWAN gateway export analyzer")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        help="Path to YAML config file (default: $LWA_CONFIG or /etc/lw_analyzer/config.yaml)",
    )
    parser.add_argument("--input", "-i", help="Gateway export CSV file")
    parser.add_argument("--output", "-o", help="Write JSON here instead of stdout")
    parser.add_argument("--timezone", help="IANA timezone of naive CSV timestamps (default: UTC)")
    parser.add_argument("--start", help="Filter window start (ISO-8601)")
    parser.add_argument("--end", help="Filter window end (ISO-8601)")
    parser.add_argument("--inclusive-start", action="store_true", help="Keep records exactly at --start")
    parser.add_argument("--inclusive-end", action="store_true", help="Keep records exactly at --end")
    parser.add_argument("--gap-minutes", type=float, help="No-data gap threshold; also an exception rule")
    parser.add_argument("--loss-threshold", type=float, help="Loss rate %% above which a node is abnormal")
    parser.add_argument("--reset-threshold", type=int, help="Frame counter resets that make a node an exception")
    parser.add_argument("--inactive-minutes", type=float, help="Inactivity that makes a node an exception")
    parser.add_argument("--no-fill", action="store_true", help="Do not backfill days without data")
    parser.add_argument(
        "--fill-baseline",
        choices=["per-node-daily-median", "fixed"],
        help="Expected packet baseline for backfilled days",
    )
    parser.add_argument("--no-records", action="store_true", help="Omit the filtered records from the output")
    parser.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
    parser.add_argument("--write-config", help="Save the effective configuration to this YAML file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args(argv)

    try:
        status = run(args)
    except (AnalyticsError, ValidationError) as e:
        logger.error(str(e))
        status = _write_error(e)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        status = _write_error(e)

    sys.exit(status)


if __name__ == "__main__":
    main()
