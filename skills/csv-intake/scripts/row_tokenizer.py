#!/usr/bin/env python3
"""
csv-intake row_tokenizer.py

Quote-aware tokenizer and header resolution for decoded exports.

The tokenizer never raises on malformed input: an unterminated quote swallows
the rest of the file into one field and is reported as an anomaly, and ragged
rows are kept exactly as they were read.

Public API:
    table, anomalies = tokenize(text, delimiter)
    headers, rows, anomalies = resolve_header(table)
    anomalies = validate_headers(headers)
"""

from __future__ import annotations

import logging
import math
import re
import sys
from collections import Counter
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent))
from intake_modules.settings import IntakeSettings, get_settings
from intake_modules.shared import Anomaly, RawTable

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════════
# TOKENIZER
# ══════════════════════════════════════════════════════════════════════════════

def tokenize(text: str, delimiter: str = ",", quote: str = '"') -> tuple[RawTable, list[Anomaly]]:
    """
    Split ``text`` into rows of trimmed fields.

    Outside quotes a delimiter ends the field and ``\\n``, ``\\r\\n`` or a lone
    ``\\r`` ends the row. Inside quotes a doubled quote is a literal quote and
    any line break is kept as ``\\n``. Blank lines outside quotes are skipped.
    """
    rows: list[list[str]] = []
    row: list[str] = []
    buf: list[str] = []
    quoted = False
    line_no = 1
    quote_opened_at = 0
    i = 0
    length = len(text)

    def end_row() -> None:
        row.append("".join(buf).strip())
        buf.clear()
        if len(row) > 1 or row[0]:
            rows.append(list(row))
        row.clear()

    while i < length:
        ch = text[i]
        if quoted:
            if ch == quote:
                if i + 1 < length and text[i + 1] == quote:
                    buf.append(quote)
                    i += 1
                else:
                    quoted = False
            elif ch == "\r" or ch == "\n":
                if ch == "\r" and i + 1 < length and text[i + 1] == "\n":
                    i += 1
                buf.append("\n")
                line_no += 1
            else:
                buf.append(ch)
        elif ch == quote:
            quoted = True
            quote_opened_at = line_no
        elif ch == delimiter:
            row.append("".join(buf).strip())
            buf.clear()
        elif ch == "\r" or ch == "\n":
            if ch == "\r" and i + 1 < length and text[i + 1] == "\n":
                i += 1
            end_row()
            line_no += 1
        else:
            buf.append(ch)
        i += 1

    anomalies: list[Anomaly] = []
    if buf or row or quoted:
        end_row()
    if quoted:
        anomalies.append(
            Anomaly(
                "unterminated_quote",
                f"Unclosed quotes detected starting at line {quote_opened_at}; "
                "the rest of the file was read as one field",
                line=quote_opened_at,
            )
        )
        logger.debug("unterminated quote opened at line %d", quote_opened_at)

    return RawTable.from_lists(rows), anomalies


# ══════════════════════════════════════════════════════════════════════════════
# HEADER RESOLUTION
# ══════════════════════════════════════════════════════════════════════════════

def positional_name(index: int) -> str:
    return f"Column {index + 1}"


NUMERIC_CELL_RE = re.compile(r"[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


def _is_numeric(value: str) -> bool:
    """Plain decimal or exponent notation only; ``NaN``, ``inf`` and ``1_000`` are text."""
    return bool(NUMERIC_CELL_RE.fullmatch(value)) and math.isfinite(float(value))


def looks_like_header(table: RawTable) -> bool:
    """A first row of non-empty, non-numeric cells followed by data is a header."""
    if len(table) < 2:
        return False
    return all(cell and not _is_numeric(cell) for cell in table.rows[0])


def validate_headers(headers: list[str], settings: Optional[IntakeSettings] = None) -> list[Anomaly]:
    settings = settings or get_settings()
    anomalies: list[Anomaly] = []

    for idx, name in enumerate(headers):
        if not name.strip():
            anomalies.append(Anomaly("header_empty", f"Header in column {idx + 1} is empty"))

    counts = Counter(name for name in headers if name.strip())
    for name, count in counts.items():
        if count > 1:
            anomalies.append(
                Anomaly("header_duplicate", f"Duplicate header '{name}' appears {count} times")
            )

    for name in headers:
        if len(name) > settings.long_header_chars:
            anomalies.append(
                Anomaly(
                    "header_long",
                    f"Header '{name[:30]}...' is longer than {settings.long_header_chars} characters",
                )
            )
    return anomalies


def _ragged_anomalies(
    rows: list[list[str]],
    expected: int,
    first_row_number: int,
    limit: int,
) -> list[Anomaly]:
    anomalies: list[Anomaly] = []
    extra = 0
    for offset, row in enumerate(rows):
        if len(row) == expected:
            continue
        if len(anomalies) >= limit:
            extra += 1
            continue
        row_number = first_row_number + offset
        anomalies.append(
            Anomaly(
                "ragged_row",
                f"Row {row_number} has {len(row)} fields, expected {expected}",
                row=row_number,
            )
        )
    if extra:
        anomalies.append(
            Anomaly(
                "ragged_rows_truncated",
                f"{extra} more row(s) have inconsistent field counts",
            )
        )
    return anomalies


def resolve_header(
    table: RawTable,
    has_header: Optional[bool] = None,
    settings: Optional[IntakeSettings] = None,
) -> tuple[list[str], list[list[str]], list[Anomaly]]:
    """
    Split ``table`` into header names and data rows.

    ``has_header=None`` auto-detects; ``True`` and ``False`` force the choice.
    Without a header every row is data and columns are named ``Column N``
    up to the widest row. Row numbers in anomalies count the header as row 1.
    """
    settings = settings or get_settings()
    if not table.rows:
        return [], [], []

    use_header = looks_like_header(table) if has_header is None else has_header
    anomalies: list[Anomaly] = []

    if use_header:
        headers = []
        for idx, cell in enumerate(table.rows[0]):
            if cell:
                headers.append(cell)
                continue
            headers.append(positional_name(idx))
            anomalies.append(
                Anomaly("header_empty", f"Header in column {idx + 1} is empty; named '{positional_name(idx)}'")
            )
        data_rows = [list(row) for row in table.rows[1:]]
        first_row_number = 2
    else:
        width = max(len(row) for row in table.rows)
        headers = [positional_name(idx) for idx in range(width)]
        data_rows = [list(row) for row in table.rows]
        first_row_number = 1

    anomalies.extend(
        anomaly for anomaly in validate_headers(headers, settings) if anomaly.code != "header_empty"
    )
    anomalies.extend(
        _ragged_anomalies(data_rows, len(headers), first_row_number, settings.ragged_warning_limit)
    )
    logger.debug(
        "resolved %d header(s), header row %s, %d data row(s)",
        len(headers),
        "present" if use_header else "absent",
        len(data_rows),
    )
    return headers, data_rows, anomalies
