#!/usr/bin/env python3
"""
loader.py — Upload loader for csv-intake

Validates an uploaded buffer against the caller's plan and turns it into a
ParseResult: decoded text, delimiter, header, data rows and column profiles.

Public API:
    result = parse_bytes(raw, filename="export.csv", plan="free")
    result = load_file("path/to/export.csv")
    df     = rows_to_dataframe(result)

Rejections (unsupported type, too large, empty) happen before any decoding
and come back as an unsuccessful ParseResult carrying a Rejection.
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import Optional

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent))
from byte_decoder import decode_upload
from column_detector import analyse_columns
from delimiter_detector import detect_delimiter, resolve_delimiter
from intake_modules.settings import (
    MB,
    SUPPORTED_MIME_TYPES,
    SUPPORTED_SUFFIXES,
    IntakeSettings,
    default_plan_from_env,
    get_settings,
)
from intake_modules.shared import ParseResult, Rejection
from row_tokenizer import positional_name, resolve_header, tokenize

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "Unexpected error while parsing file"
SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


# ══════════════════════════════════════════════════════════════════════════════
# UPLOAD VALIDATION
# ══════════════════════════════════════════════════════════════════════════════

def format_file_size(num_bytes: int) -> str:
    """1536 -> '1.5 KB'."""
    if num_bytes <= 0:
        return "0 Bytes"
    idx = 0
    value = float(num_bytes)
    while value >= 1024 and idx < len(SIZE_UNITS) - 1:
        value /= 1024
        idx += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[idx]}"


def is_supported_type(filename: str, mime_type: Optional[str]) -> bool:
    if mime_type and mime_type in SUPPORTED_MIME_TYPES:
        return True
    return Path(filename).suffix.lower() in SUPPORTED_SUFFIXES


def validate_upload(
    size: int,
    filename: str,
    mime_type: Optional[str] = None,
    plan: Optional[str] = None,
    settings: Optional[IntakeSettings] = None,
) -> Optional[Rejection]:
    """Return a Rejection when the upload must not be parsed, else None."""
    settings = settings or get_settings()
    plan = plan or default_plan_from_env()
    limit = settings.limit_for(plan)

    if not is_supported_type(filename, mime_type):
        return Rejection(
            "unsupported_type",
            "Unsupported file type. Please upload a CSV file.",
            plan,
        )
    if size > limit:
        limit_mb = round(limit / MB)
        return Rejection(
            "file_too_large",
            f"File size exceeds {limit_mb}MB limit for {plan} plan. Please upgrade or use a smaller file.",
            plan,
            limit_bytes=limit,
        )
    if size == 0:
        return Rejection(
            "empty_file",
            "File is empty. Please upload a file with data.",
            plan,
        )
    return None


# ══════════════════════════════════════════════════════════════════════════════
# PARSING
# ══════════════════════════════════════════════════════════════════════════════

def _parse(
    raw: bytes,
    delimiter: Optional[str],
    has_header: Optional[bool],
    settings: IntakeSettings,
) -> ParseResult:
    decoded = decode_upload(raw, settings)
    anomalies = list(decoded.anomalies)

    if delimiter is None:
        delimiter = detect_delimiter(decoded.text, settings.dialect_sample_lines)
    logger.debug("using delimiter %r", delimiter)

    table, token_anomalies = tokenize(decoded.text, delimiter)
    anomalies.extend(token_anomalies)

    headers, data_rows, header_anomalies = resolve_header(table, has_header, settings)
    anomalies.extend(header_anomalies)

    profiles = analyse_columns(headers, data_rows, settings)
    return ParseResult(
        success=True,
        headers=headers,
        sample_data=[list(row) for row in data_rows[: settings.sample_rows]],
        total_rows=len(data_rows),
        detected_encoding=decoded.guess.encoding,
        column_types=profiles,
        file_size=len(raw),
        warnings=[anomaly.message for anomaly in anomalies],
        delimiter=delimiter,
        encoding_info=decoded.encoding_info,
        anomalies=anomalies,
        rows=data_rows,
    )


def parse_bytes(
    raw: bytes,
    filename: str = "upload.csv",
    mime_type: Optional[str] = None,
    plan: Optional[str] = None,
    delimiter: Optional[str] = None,
    has_header: Optional[bool] = None,
    settings: Optional[IntakeSettings] = None,
) -> ParseResult:
    """
    Validate and parse one uploaded buffer.

    ``delimiter`` may be a single character or a name such as ``tab``.

    Raises IntakeError for an unknown plan or an unusable delimiter. Every
    other failure comes back as ``success=False`` with ``error`` set.
    """
    started = time.perf_counter()
    settings = settings or get_settings()
    if delimiter is not None:
        delimiter = resolve_delimiter(delimiter)

    rejection = validate_upload(len(raw), filename, mime_type, plan, settings)
    if rejection is not None:
        logger.info("rejected %s: %s", filename, rejection.code)
        return ParseResult.failure(
            rejection.message,
            file_size=len(raw),
            processing_ms=(time.perf_counter() - started) * 1000,
            rejection=rejection,
        )

    try:
        result = _parse(raw, delimiter, has_header, settings)
    except Exception:
        logger.exception("failed to parse %s", filename)
        return ParseResult.failure(
            UNEXPECTED_ERROR,
            file_size=len(raw),
            processing_ms=(time.perf_counter() - started) * 1000,
        )

    result.processing_ms = (time.perf_counter() - started) * 1000
    return result


def load_file(
    path: "str | Path",
    plan: Optional[str] = None,
    mime_type: Optional[str] = None,
    delimiter: Optional[str] = None,
    has_header: Optional[bool] = None,
    settings: Optional[IntakeSettings] = None,
) -> ParseResult:
    """
    Read ``path`` and parse it with ``parse_bytes``.

    Raises:
        FileNotFoundError  if the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if path.suffix.lower() == ".tsv" and delimiter is None:
        delimiter = "\t"
    return parse_bytes(
        path.read_bytes(),
        filename=path.name,
        mime_type=mime_type,
        plan=plan,
        delimiter=delimiter,
        has_header=has_header,
        settings=settings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# TABULAR VIEWS
# ══════════════════════════════════════════════════════════════════════════════

def rectangular_rows(headers: list[str], rows: list[list[str]]) -> tuple[list[str], list[list[str]], int]:
    """
    Pad short rows and give overflow fields positional column names.

    Returns (columns, rows, overflowing_row_count). Nothing is dropped: the
    extra columns come straight after the original headers.
    """
    widest = max((len(row) for row in rows), default=0)
    columns = list(headers)
    for idx in range(len(headers), widest):
        name = positional_name(idx)
        while name in columns:
            name += "_"
        columns.append(name)
    overflowing = sum(1 for row in rows if len(row) > len(headers))
    padded = [list(row) + [""] * (len(columns) - len(row)) for row in rows]
    return columns, padded, overflowing


def rows_to_dataframe(result: ParseResult) -> pd.DataFrame:
    """All data rows as a string-typed DataFrame."""
    columns, rows, _ = rectangular_rows(result.headers, result.rows)
    return pd.DataFrame(rows, columns=columns, dtype=str)
