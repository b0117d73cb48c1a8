#!/usr/bin/env python3
"""
csv-intake column_detector.py

Infers a coarse type for every column of a parsed export and coerces raw
cells into typed values once the type is known.

Each of the first 100 non-empty values is classified by an ordered chain
(email, url, date, number, boolean, text); the most frequent class wins and
any tie for first place falls back to text.

Usage:
    python column_detector.py <path-to-file>
"""

from __future__ import annotations

import json
import re
import sys
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterator, Optional, Union

sys.path.insert(0, str(Path(__file__).parent))
from intake_modules.settings import IntakeSettings, get_settings
from intake_modules.shared import ColumnProfile, ColumnType


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
URL_RE = re.compile(r"^https?://.+")
DATE_RE = re.compile(r"^\d{1,4}[-/]\d{1,2}[-/]\d{1,4}$")
NUMBER_RE = re.compile(r"^-?\d*\.?\d+$")
BOOLEAN_RE = re.compile(r"^(true|false|yes|no|1|0)$", re.IGNORECASE)

TYPE_CHAIN = (
    (ColumnType.EMAIL, EMAIL_RE),
    (ColumnType.URL, URL_RE),
    (ColumnType.DATE, DATE_RE),
    (ColumnType.NUMBER, NUMBER_RE),
    (ColumnType.BOOLEAN, BOOLEAN_RE),
)

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%m-%d-%Y",
    "%d/%m/%y",
    "%m/%d/%y",
)

BOOLEAN_TRUE = {"true", "yes", "1"}


# ══════════════════════════════════════════════════════════════════════════════
# TYPED VALUES
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TextValue:
    raw: str

    @property
    def value(self) -> str:
        return self.raw


@dataclass(frozen=True)
class NumberValue:
    raw: str
    value: Decimal


@dataclass(frozen=True)
class DateValue:
    raw: str
    value: date


@dataclass(frozen=True)
class BooleanValue:
    raw: str
    value: bool


@dataclass(frozen=True)
class EmailValue:
    raw: str

    @property
    def value(self) -> str:
        return self.raw


@dataclass(frozen=True)
class UrlValue:
    raw: str

    @property
    def value(self) -> str:
        return self.raw


TypedValue = Union[TextValue, NumberValue, DateValue, BooleanValue, EmailValue, UrlValue]


def parse_date(text: str) -> Optional[date]:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def coerce_value(raw: str, column_type: ColumnType) -> TypedValue:
    """
    Wrap ``raw`` in the variant for ``column_type``.

    Cells that do not actually fit the column type (a stray word in a number
    column, 2024-13-45 in a date column) come back as ``TextValue``.
    """
    text = raw.strip()
    if column_type == ColumnType.NUMBER and NUMBER_RE.match(text):
        try:
            return NumberValue(raw, Decimal(text))
        except InvalidOperation:
            return TextValue(raw)
    if column_type == ColumnType.DATE and DATE_RE.match(text):
        parsed = parse_date(text)
        return DateValue(raw, parsed) if parsed else TextValue(raw)
    if column_type == ColumnType.BOOLEAN and BOOLEAN_RE.match(text):
        return BooleanValue(raw, text.lower() in BOOLEAN_TRUE)
    if column_type == ColumnType.EMAIL and EMAIL_RE.match(text):
        return EmailValue(raw)
    if column_type == ColumnType.URL and URL_RE.match(text):
        return UrlValue(raw)
    return TextValue(raw)


# ══════════════════════════════════════════════════════════════════════════════
# INFERENCE
# ══════════════════════════════════════════════════════════════════════════════

def classify_value(value: str) -> ColumnType:
    for column_type, pattern in TYPE_CHAIN:
        if pattern.match(value):
            return column_type
    return ColumnType.TEXT


def column_values(rows: list[list[str]], index: int) -> list[str]:
    """Non-empty trimmed cells at ``index``; missing cells count as empty."""
    values = []
    for row in rows:
        if index < len(row):
            cell = row[index].strip()
            if cell:
                values.append(cell)
    return values


def _tally(values: list[str], limit: int) -> tuple[Counter, int]:
    sample = values[:limit]
    return Counter(classify_value(value) for value in sample), len(sample)


def _winner(counts: Counter) -> tuple[ColumnType, int]:
    ranked = counts.most_common()
    if not ranked:
        return ColumnType.TEXT, 0
    top_type, top_count = ranked[0]
    if len(ranked) > 1 and ranked[1][1] == top_count:
        return ColumnType.TEXT, top_count
    return top_type, top_count


def detect_column_type(values: list[str], settings: Optional[IntakeSettings] = None) -> ColumnType:
    settings = settings or get_settings()
    counts, _ = _tally(values, settings.type_sample_limit)
    return _winner(counts)[0]


def type_confidence(values: list[str], column_type: ColumnType, settings: Optional[IntakeSettings] = None) -> int:
    """Share of the sampled values that classify as ``column_type``, 0-100."""
    settings = settings or get_settings()
    counts, size = _tally(values, settings.type_sample_limit)
    if not size:
        return 0
    return round(counts.get(column_type, 0) / size * 100)


def analyse_column(
    index: int,
    name: str,
    rows: list[list[str]],
    settings: Optional[IntakeSettings] = None,
) -> ColumnProfile:
    settings = settings or get_settings()
    values = column_values(rows, index)
    counts, size = _tally(values, settings.type_sample_limit)
    column_type, top_count = _winner(counts)
    confidence = round(top_count / size * 100) if size else 0
    return ColumnProfile(
        index=index,
        name=name,
        type=column_type,
        sample_values=tuple(values[: settings.profile_sample_values]),
        null_count=len(rows) - len(values),
        confidence=confidence,
    )


def analyse_columns(
    headers: list[str],
    rows: list[list[str]],
    settings: Optional[IntakeSettings] = None,
) -> list[ColumnProfile]:
    settings = settings or get_settings()
    return [analyse_column(idx, name, rows, settings) for idx, name in enumerate(headers)]


def typed_rows(
    headers: list[str],
    rows: list[list[str]],
    profiles: list[ColumnProfile],
) -> Iterator[list[TypedValue]]:
    """Yield each row as typed values in header order. Missing cells become empty text."""
    types = [profile.type for profile in profiles]
    for row in rows:
        typed: list[TypedValue] = []
        for idx in range(len(headers)):
            raw = row[idx] if idx < len(row) else ""
            typed.append(coerce_value(raw, types[idx]) if raw else TextValue(raw))
        yield typed


def build_report(file_path: Path) -> dict:
    from loader import load_file

    result = load_file(file_path)
    return {
        "file": str(file_path),
        "success": result.success,
        "error": result.error,
        "detectedEncoding": result.detected_encoding,
        "delimiter": result.delimiter,
        "totalRows": result.total_rows,
        "columnTypes": [profile.to_dict() for profile in result.column_types],
        "summary": {
            "detected_types": dict(sorted(Counter(p.type.value for p in result.column_types).items())),
        },
    }


def main() -> int:
    if len(sys.argv) < 2:
        print(json.dumps({"error": "Usage: column_detector.py <file>"}))
        return 1

    file_path = Path(sys.argv[1])
    if not file_path.exists():
        print(json.dumps({"error": f"File not found: {file_path}"}))
        return 1

    print(json.dumps(build_report(file_path), indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
