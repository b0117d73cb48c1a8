#!/usr/bin/env python3
"""
csv-intake exporter.py

Writes the enhanced export planned by export_planner: every original column
in its original order, then the generated columns. Generated cell values come
from an external content service; whatever it did not fill is left blank.

Supported outputs: .csv (csv module, every field quoted) and .xlsx (pandas
with the openpyxl engine).
"""

from __future__ import annotations

import csv
import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent))
from intake_modules.shared import Anomaly, ExportStructure, IntakeError, ParseResult
from loader import rectangular_rows

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {".csv", ".xlsx"}


def build_export_rows(
    parsed: ParseResult,
    structure: ExportStructure,
    generated: Optional[Sequence[Mapping[str, str]]] = None,
) -> tuple[list[str], list[list[str]], list[Anomaly]]:
    """
    Assemble the output header and rows.

    Raises IntakeError if ``structure`` was planned for different headers.
    """
    if list(structure.preserve_original_columns) != list(parsed.headers):
        raise IntakeError("Export structure does not match the parsed headers")

    columns, rows, overflowing = rectangular_rows(parsed.headers, parsed.rows)
    anomalies: list[Anomaly] = []
    if overflowing:
        extra = columns[len(parsed.headers):]
        anomalies.append(
            Anomaly(
                "export_overflow_fields",
                f"{overflowing} row(s) had more fields than the header; "
                f"extra values written under {', '.join(extra)}",
            )
        )

    for name, actual in structure.renamed_columns:
        anomalies.append(
            Anomaly(
                "export_column_renamed",
                f"The file already has a {name} column; generated values written under {actual}",
            )
        )

    generated_columns = list(structure.add_generated_columns)
    source_names = {actual: name for name, actual in structure.renamed_columns}
    generated = generated or []
    out_rows = []
    for idx, row in enumerate(rows):
        values = generated[idx] if idx < len(generated) else {}
        out_rows.append(row + [values.get(source_names.get(name, name), "") for name in generated_columns])
    return columns + generated_columns, out_rows, anomalies


def write_export(
    parsed: ParseResult,
    structure: ExportStructure,
    output_path: "str | Path",
    generated: Optional[Sequence[Mapping[str, str]]] = None,
) -> dict[str, Any]:
    output_path = Path(output_path)
    suffix = output_path.suffix.lower()
    if suffix not in EXPORT_FORMATS:
        supported = ", ".join(sorted(EXPORT_FORMATS))
        raise IntakeError(f"Unsupported export format '{suffix}'. Supported: {supported}")
    if not parsed.success:
        raise IntakeError("Cannot export a file that failed to parse")

    columns, rows, anomalies = build_export_rows(parsed, structure, generated)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == ".csv":
        with output_path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle, quoting=csv.QUOTE_ALL)
            writer.writerow(columns)
            writer.writerows(rows)
    else:
        frame = pd.DataFrame(rows, columns=columns, dtype=str)
        frame.to_excel(output_path, index=False, engine="openpyxl")

    for anomaly in anomalies:
        logger.warning(anomaly.message)
    logger.debug("wrote %d row(s) x %d column(s) to %s", len(rows), len(columns), output_path)

    return {
        "output": str(output_path),
        "format": suffix.lstrip("."),
        "rows_written": len(rows),
        "columns_written": len(columns),
        "original_columns": len(structure.preserve_original_columns),
        "generated_columns": len(structure.add_generated_columns),
        "anomalies": [anomaly.to_dict() for anomaly in anomalies],
        "warnings": [anomaly.message for anomaly in anomalies],
    }
