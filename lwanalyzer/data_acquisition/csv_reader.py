import csv
import io
import logging
import math
import re
from datetime import datetime
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..analytics.config import Config
from ..analytics.errors import AnalyticsError, ErrorCode
from ..analytics.records import FrameDirection, RawRecord
from ..analytics.validation import ValidationError

logger = logging.getLogger("DataAcquisition.CSV")


# --------------------------------------------------------------------
# Header mapping: gateway export column -> RawRecord field
# --------------------------------------------------------------------
HEADER_MAP = {
    "Received": "time",
    "Device Name": "device_name",
    "Type": "frame_direction",
    "DevAddr": "device_address",
    "MAC": "gateway_ids",
    "U/L RSSI": "rssi",
    "U/L SNR": "snr",
    "FCnt": "frame_counter",
    "Datarate": "data_rate",
    "ACK": "ack",
    "Port": "port",
    "Frequency": "frequency",
    "MAC Command": "mac_command",
    "Data": "payload_hex",
}

# Case-insensitive alternative spellings
HEADER_ALIASES = {
    "time": "Received",
    "device name": "Device Name",
    "devname": "Device Name",
    "devaddr": "DevAddr",
    "fcnt": "FCnt",
    "freq": "Frequency",
    "mac command": "MAC Command",
    "maccommand": "MAC Command",
    "rssi": "U/L RSSI",
    "snr": "U/L SNR",
}

REQUIRED_FIELDS = ("time", "device_name", "device_address")

NAIVE_TIME = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")
MAC_SEPARATORS = re.compile(r"[\n;,]")

RowErrorCallback = Callable[[int, str], None]


def normalize_header(raw: str) -> Optional[str]:
    """Map an export column title to its RawRecord field, None if unknown."""
    if not raw:
        return None
    key = raw.strip().lstrip("\ufeff")
    lower = key.lower()
    if lower in HEADER_ALIASES:
        key = HEADER_ALIASES[lower]
    for header, field_name in HEADER_MAP.items():
        if header.lower() == key.lower():
            return field_name
    return None


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """IANA zone for naive timestamps; raises ValidationError when unknown."""
    name = name or Config.INGEST.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError("timezone", f"unknown IANA timezone '{name}'", name)


# --------------------------------------------------------------------
# Field parsers
# --------------------------------------------------------------------
def parse_time(raw: Optional[str], zone: ZoneInfo) -> Optional[datetime]:
    """
    Parse an export timestamp.

    "YYYY-MM-DD HH:MM:SS" and other offset-less ISO forms are local time
    in zone; values carrying an offset or "Z" keep it.
    """
    if not raw or not raw.strip():
        return None
    text = raw.strip()
    if NAIVE_TIME.match(text):
        text = text.replace(" ", "T")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed


def parse_number(raw: Optional[str]) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    try:
        number = float(raw.strip())
    except ValueError:
        return None
    return None if math.isnan(number) or math.isinf(number) else number


def parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    match = re.match(r"^\s*([+-]?\d+)", raw)
    return int(match.group(1)) if match else None


def parse_bool(raw: Optional[str]) -> Optional[bool]:
    if raw is None:
        return None
    text = raw.strip().lower()
    if text in ("true", "1"):
        return True
    if text in ("false", "0"):
        return False
    return None


def parse_mac_list(raw: Optional[str]) -> tuple:
    if not raw:
        return ()
    return tuple(part.strip() for part in MAC_SEPARATORS.split(raw) if part.strip())


def _text_or_none(raw: Optional[str]) -> Optional[str]:
    if raw is None or not raw.strip():
        return None
    return raw.strip()


# ====================================================================
# Reader
# ====================================================================
class CSVRecordReader:
    """
    Turns gateway export CSV text into RawRecord objects.

    Quoted fields may contain commas and newlines. Rows without a
    device name, device address or a readable timestamp are dropped and
    reported through on_row_error(line_number, message).
    """

    def __init__(
        self,
        timezone: Optional[str] = None,
        on_row_error: Optional[RowErrorCallback] = None,
    ):
        self.zone = resolve_timezone(timezone)
        self._on_row_error = on_row_error
        self.rows_read = 0
        self.rows_dropped = 0

    def _report(self, line: int, message: str) -> None:
        self.rows_dropped += 1
        logger.warning(f"Dropping CSV row at line {line}: {message}")
        if self._on_row_error:
            self._on_row_error(line, message)

    def _read_header(self, header: List[str]) -> Dict[int, str]:
        columns = {}
        for index, title in enumerate(header):
            field_name = normalize_header(title)
            if field_name is None:
                logger.debug(f"Ignoring unknown column {title!r}")
            elif field_name not in columns.values():
                columns[index] = field_name

        missing = [f for f in REQUIRED_FIELDS if f not in columns.values()]
        if missing:
            raise AnalyticsError(
                ErrorCode.INVALID_INPUT,
                f"CSV header is missing required column(s): {', '.join(missing)}",
                details={"header": header},
            )
        return columns

    def _transform(self, values: Dict[str, str], line: int) -> Optional[RawRecord]:
        name = _text_or_none(values.get("device_name"))
        address = _text_or_none(values.get("device_address"))
        if not name or not address:
            self._report(line, "Missing required device name or device address")
            return None

        moment = parse_time(values.get("time"), self.zone)
        if moment is None:
            self._report(line, f"Unreadable time {values.get('time')!r}")
            return None

        return RawRecord(
            time=moment,
            device_name=name,
            device_address=address,
            frame_counter=parse_int(values.get("frame_counter")),
            frequency=parse_number(values.get("frequency")),
            rssi=parse_number(values.get("rssi")),
            snr=parse_number(values.get("snr")),
            port=parse_int(values.get("port")),
            frame_direction=FrameDirection.parse(values.get("frame_direction")),
            data_rate=_text_or_none(values.get("data_rate")),
            gateway_ids=parse_mac_list(values.get("gateway_ids")),
            payload_hex=_text_or_none(values.get("payload_hex")),
            ack=parse_bool(values.get("ack")),
            mac_command=_text_or_none(values.get("mac_command")),
        )

    def parse_text(self, text: str) -> List[RawRecord]:
        """Parse CSV text (header row first) into records, in file order."""
        reader = csv.reader(io.StringIO(text, newline=""))
        header = None
        for row in reader:
            if any(cell.strip() for cell in row):
                header = row
                break
        if header is None:
            logger.warning("CSV input is empty")
            return []

        columns = self._read_header(header)
        records = []

        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            self.rows_read += 1
            values = {
                field_name: row[index]
                for index, field_name in columns.items()
                if index < len(row)
            }
            record = self._transform(values, reader.line_num)
            if record is not None:
                records.append(record)

        logger.info(
            f"Parsed {len(records)} records from {self.rows_read} CSV rows "
            f"({self.rows_dropped} dropped, timezone {self.zone.key})"
        )
        return records

    def read(self, path: str) -> List[RawRecord]:
        try:
            with open(path, "r", encoding="utf-8-sig", newline="") as f:
                text = f.read()
        except OSError as e:
            raise AnalyticsError(
                ErrorCode.INVALID_INPUT,
                f"Cannot read CSV file {path}: {e}",
                details={"path": str(path)},
            )
        return self.parse_text(text)


def parse_csv_text(
    text: str,
    timezone: Optional[str] = None,
    on_row_error: Optional[RowErrorCallback] = None,
) -> List[RawRecord]:
    return CSVRecordReader(timezone, on_row_error).parse_text(text)


def read_csv_records(
    path: str,
    timezone: Optional[str] = None,
    on_row_error: Optional[RowErrorCallback] = None,
) -> List[RawRecord]:
    return CSVRecordReader(timezone, on_row_error).read(path)
