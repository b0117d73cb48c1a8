#!/usr/bin/env python3
"""
csv-intake reporter.py

Builds a plain-text and JSON intake report from intake.py output.

Usage:
    python reporter.py <path-to-file> [output.txt] [output.json]
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

SCRIPT_DIR = Path(__file__).resolve().parent
ROOT_DIR = SCRIPT_DIR.parents[2]
sys.path.insert(0, str(ROOT_DIR))
sys.path.insert(0, str(SCRIPT_DIR))

from copyflow_intake import __version__ as TOOL_VERSION
from copyflow_intake.contracts import build_run_summary, stamp_payload
from delimiter_detector import delimiter_name
from intake import build_payload, intake_file
from issue_taxonomy import SEVERITY_ORDER
from loader import format_file_size


SEVERITY_HEADINGS = {
    "critical": "🚨 Critical (file could not be used)",
    "warning": "⚠️  Warning (check before importing)",
    "info": "ℹ️  Info (worth knowing)",
}

CONFIDENCE_LABELS = [
    (80, "High"),
    (50, "Medium"),
    (30, "Low"),
    (0, "Unreliable"),
]


def confidence_label(confidence: int) -> str:
    return next(text for threshold, text in CONFIDENCE_LABELS if confidence >= threshold)


def format_issue(issue: dict[str, Any]) -> str:
    if issue.get("row"):
        return f"- [{issue['code']}] {issue['message']} (row {issue['row']})"
    if issue.get("line"):
        return f"- [{issue['code']}] {issue['message']} (line {issue['line']})"
    return f"- [{issue['code']}] {issue['message']}"


def render_text_report(report_json: dict[str, Any]) -> str:
    overview = report_json["file_overview"]
    intake = report_json["intake"]
    parse = intake["parse"]

    lines = [
        "SECTION 1 — FILE OVERVIEW",
        f"📄 File: {overview['file']}",
        f"💾 Size: {overview['size']}",
        f"📊 Rows: {parse['totalRows']} × {len(parse['headers'])} columns",
        f"🔤 Encoding: {parse['detectedEncoding']}",
        f"✂️  Delimiter: {overview['delimiter']}",
        f"⏱  Scanned: {overview['scanned_at']}",
        "",
    ]

    if not intake["success"]:
        lines.extend(["SECTION 2 — RESULT", f"❌ {intake['error']}"])
        return "\n".join(lines).strip() + "\n"

    detection = intake["detection"]
    lines.extend(
        [
            "SECTION 2 — PLATFORM DETECTION",
            f"🛒 Platform: {detection['detectedPlatform']}",
            f"🎯 Confidence: {detection['confidence']}/100 ({confidence_label(detection['confidence'])})",
        ]
    )
    for candidate in detection["candidates"][:3]:
        lines.append(f"  • {candidate['platform']}: {candidate['score']}")
    for evidence in detection["evidence"]:
        lines.append(f"  - {evidence['type']}: {evidence['field']} ({evidence['value']})")

    lines.extend(["", "SECTION 3 — COLUMN TYPES"])
    for column in parse["columnTypes"]:
        lines.append(
            f"{column['name']} | {column['type']} | {column['confidence']}% | {column['nullCount']} empty"
        )

    lines.extend(["", "SECTION 4 — COLUMN MAPPING"])
    mapping = intake["columnMapping"]
    if not mapping:
        lines.append("- No canonical fields matched")
    for field_name, header in mapping.items():
        lines.append(f"{field_name} ← {header}")
    if intake["unmappedFields"]:
        lines.append(f"Unmapped: {', '.join(intake['unmappedFields'])}")

    export = intake["exportStructure"]
    lines.extend(
        [
            "",
            "SECTION 5 — EXPORT PLAN",
            f"Original columns kept: {len(export['preserveOriginalColumns'])}",
            f"Generated columns added: {len(export['addCopyFlowColumns'])}"
            f" ({len(export['platformSpecificColumns'])} platform-specific)",
            f"Total columns: {export['totalColumns']}",
            f"Estimated size: {export['estimatedFileSize']}",
        ]
    )
    for name, actual in export["renamedColumns"].items():
        lines.append(f"Renamed: {name} → {actual}")
    lines.extend(["", "SECTION 6 — ISSUES FOUND"])
    for severity in SEVERITY_ORDER:
        lines.append(SEVERITY_HEADINGS[severity])
        items = intake["issues"][severity]
        if not items:
            lines.append("- None")
        for item in items:
            lines.append(format_issue(item))
        lines.append("")

    lines.append("SECTION 7 — RECOMMENDATIONS")
    for index, recommendation in enumerate(intake["recommendations"], start=1):
        lines.append(f"{index}. {recommendation}")

    return "\n".join(lines).strip() + "\n"


def build_report(file_path: Path, **intake_kwargs: Any) -> dict[str, Any]:
    result = intake_file(file_path, **intake_kwargs)
    intake_payload = build_payload(result, file_path)
    parse = result.parse

    report_json = stamp_payload(
        "csv_intake.report",
        {
            "file_overview": {
                "file": file_path.name,
                "size": format_file_size(parse.file_size),
                "delimiter": delimiter_name(parse.delimiter) if parse.delimiter else "n/a",
                "scanned_at": datetime.now().isoformat(timespec="seconds"),
            },
            "intake": intake_payload,
        },
        TOOL_VERSION,
    )
    report_json["run_summary"] = build_run_summary(
        tool="csv-intake",
        script="reporter.py",
        input_path=file_path,
        status="ok" if result.success else "failed",
        metrics=dict(intake_payload["run_summary"]["metrics"]),
        warnings=result.warnings,
    )
    report_json["text_report"] = render_text_report(report_json)
    return report_json


def default_output_paths(input_path: Path) -> tuple[Path, Path]:
    base = input_path.with_name(f"{input_path.stem}_intake")
    return base.with_suffix(".txt"), base.with_suffix(".json")


def main() -> int:
    if len(sys.argv) < 2:
        print(json.dumps({"error": "Usage: reporter.py <file> [output.txt] [output.json]"}))
        return 1

    input_path = Path(sys.argv[1])
    if not input_path.exists():
        print(json.dumps({"error": f"File not found: {input_path}"}))
        return 1

    txt_path, json_path = default_output_paths(input_path)
    if len(sys.argv) >= 3:
        txt_path = Path(sys.argv[2])
    if len(sys.argv) >= 4:
        json_path = Path(sys.argv[3])

    report_json = build_report(input_path)

    txt_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.parent.mkdir(parents=True, exist_ok=True)
    txt_path.write_text(report_json["text_report"], encoding="utf-8")
    json_path.write_text(json.dumps(report_json, indent=2, ensure_ascii=False), encoding="utf-8")

    print(report_json["text_report"], end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
