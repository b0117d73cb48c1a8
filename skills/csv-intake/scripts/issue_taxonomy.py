#!/usr/bin/env python3
"""
Shared csv-intake anomaly taxonomy.

Every recoverable anomaly the pipeline records carries one of these codes, so
the loader, the detector, the report and ``copyflow-intake explain`` agree on
severity and wording.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterable


ISSUE_DEFINITIONS = {
    "encoding_ambiguous": {
        "severity": "warning",
        "description": "The byte encoding could not be determined with confidence.",
        "evidence": "High bytes were found but no known legacy encoding matched the sample.",
        "disable_hint": "Re-export the file as UTF-8 if text looks garbled.",
    },
    "encoding_fallback_lines": {
        "severity": "info",
        "description": "Some lines did not decode as UTF-8 and used a fallback encoding.",
        "evidence": "Line-by-line decoding fell back to the detected or latin-1 encoding.",
        "disable_hint": "Mixed encodings usually come from concatenated exports; re-export from one source.",
    },
    "unterminated_quote": {
        "severity": "warning",
        "description": "A quoted field was still open at the end of the file.",
        "evidence": "The tokenizer reached end of input while inside quotes.",
        "disable_hint": "Check the named row for a missing closing quote.",
    },
    "ragged_row": {
        "severity": "warning",
        "description": "A data row has a different number of fields than the header.",
        "evidence": "Row field count differs from the resolved header width.",
        "disable_hint": "Rows are kept as-is; fix the source export if columns shifted.",
    },
    "ragged_rows_truncated": {
        "severity": "warning",
        "description": "Many rows have inconsistent field counts; only the first ones are listed.",
        "evidence": "More ragged rows than the per-file warning limit.",
        "disable_hint": "The delimiter may be wrong; try forcing it with --delimiter.",
    },
    "header_empty": {
        "severity": "info",
        "description": "A header cell was empty and received a positional name.",
        "evidence": "Empty header slot replaced with 'Column N'.",
        "disable_hint": "Name every column in the source file.",
    },
    "header_duplicate": {
        "severity": "warning",
        "description": "Two or more columns share the same header name.",
        "evidence": "Duplicate header names are kept verbatim.",
        "disable_hint": "Rename duplicate columns if downstream tools key by name.",
    },
    "header_long": {
        "severity": "info",
        "description": "Some header names are unusually long.",
        "evidence": "Header longer than the configured character limit.",
        "disable_hint": "Very long headers often mean the first row is data, not a header.",
    },
    "detection_headers_only": {
        "severity": "info",
        "description": "Platform detection ran without sample data rows.",
        "evidence": "No data rows were available for pattern checks.",
        "disable_hint": "Include at least a few product rows in the upload.",
    },
    "detection_low_confidence": {
        "severity": "warning",
        "description": "The detected platform scored below the low-confidence line.",
        "evidence": "Winning signature score is under the low-confidence threshold.",
        "disable_hint": "Select the source platform manually.",
    },
    "detection_unreliable": {
        "severity": "warning",
        "description": "No platform signature scored above the minimum threshold.",
        "evidence": "Best signature score is at or below the minimum threshold.",
        "disable_hint": "The export is reported as 'unknown'; select the platform manually.",
    },
    "export_overflow_fields": {
        "severity": "warning",
        "description": "Some rows had more fields than the header while writing the export.",
        "evidence": "Overflow fields were written under positional 'Column N' names.",
        "disable_hint": "Fix the ragged rows in the source export.",
    },
    "export_column_renamed": {
        "severity": "info",
        "description": "A generated column name was already used by the source file.",
        "evidence": "The generated values were written under the same name with a numeric suffix.",
        "disable_hint": "Rename the source column if the suffixed name is unwanted.",
    },
}

SEVERITY_ORDER = ("critical", "warning", "info")


def severity_for(code: str) -> str:
    return ISSUE_DEFINITIONS.get(code, {}).get("severity", "info")


def explain(code: str) -> dict[str, Any] | None:
    definition = ISSUE_DEFINITIONS.get(code)
    if definition is None:
        return None
    return {"rule_id": code, **definition}


def group_by_severity(anomalies: Iterable[Any]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {severity: [] for severity in SEVERITY_ORDER}
    for anomaly in anomalies:
        grouped[severity_for(anomaly.code)].append(anomaly.to_dict())
    return grouped


def count_codes(anomalies: Iterable[Any]) -> dict[str, int]:
    return dict(sorted(Counter(anomaly.code for anomaly in anomalies).items()))
