from .csv_reader import (
    CSVRecordReader,
    HEADER_MAP,
    HEADER_ALIASES,
    normalize_header,
    parse_csv_text,
    read_csv_records,
    resolve_timezone,
)

__all__ = [
    "CSVRecordReader",
    "HEADER_MAP",
    "HEADER_ALIASES",
    "normalize_header",
    "parse_csv_text",
    "read_csv_records",
    "resolve_timezone",
]
