#!/usr/bin/env python3
"""
csv-intake intake.py

Runs the whole intake pipeline on one upload:

    parse -> detect platform -> map columns -> plan export

and builds the JSON payload the CLI prints.

Usage:
    python intake.py <path-to-file> [plan]
"""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

SCRIPT_DIR = Path(__file__).resolve().parent
ROOT_DIR = SCRIPT_DIR.parents[2]
sys.path.insert(0, str(ROOT_DIR))
sys.path.insert(0, str(SCRIPT_DIR))

from copyflow_intake import __version__ as TOOL_VERSION
from copyflow_intake.contracts import build_run_summary, stamp_payload
from column_mapper import generate_column_mapping, merge_mapping_overrides, unmapped_fields
from export_planner import plan_export_structure
from intake_modules.settings import IntakeSettings, get_settings
from intake_modules.shared import (
    UNKNOWN_PLATFORM,
    Anomaly,
    ColumnMapping,
    DetectionResult,
    ExportStructure,
    ParseResult,
)
from issue_taxonomy import count_codes, group_by_severity
from loader import UNEXPECTED_ERROR, parse_bytes
from platform_detector import analyse_platform, detection_anomalies

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 80

BASE_OPTIMIZATIONS = (
    "SEO title optimization",
    "Meta description enhancement",
    "Product description improvement",
    "Bullet points generation",
    "Keywords optimization",
    "Call-to-action creation",
)

PLATFORM_OPTIMIZATIONS = {
    "amazon": (
        "Amazon backend keywords (249 chars)",
        "Amazon search terms optimization",
        "Bullet points for Amazon format",
        "A+ content suggestions",
    ),
    "shopify": (
        "Shopify SEO handles",
        "Collection descriptions",
        "Product variants optimization",
        "Shopify-specific structured data",
    ),
    "ebay": (
        "eBay auction-style descriptions",
        "eBay category optimization",
        "Competitive pricing strategies",
        "eBay-specific keywords",
    ),
    "etsy": (
        "Etsy artisan storytelling",
        "Handmade appeal content",
        "Etsy tags optimization",
        "Creative product descriptions",
    ),
    "woocommerce": (
        "WooCommerce SEO optimization",
        "Product attributes enhancement",
        "Category descriptions",
        "WordPress-specific optimizations",
    ),
}


@dataclass
class IntakeResult:
    parse: ParseResult
    detection: Optional[DetectionResult] = None
    mapping: ColumnMapping = field(default_factory=dict)
    export: Optional[ExportStructure] = None
    recommendations: list[str] = field(default_factory=list)
    supported_optimizations: list[str] = field(default_factory=list)
    processing_ms: float = field(default=0.0, compare=False)

    @property
    def success(self) -> bool:
        return self.parse.success

    @property
    def platform(self) -> str:
        return self.detection.detected_platform if self.detection else UNKNOWN_PLATFORM

    @property
    def anomalies(self) -> list[Anomaly]:
        anomalies = list(self.parse.anomalies)
        if self.detection is not None:
            anomalies.extend(detection_anomalies(self.detection))
        return anomalies

    @property
    def warnings(self) -> list[str]:
        return [anomaly.message for anomaly in self.anomalies]


def generate_recommendations(
    detection: DetectionResult,
    mapping: ColumnMapping,
    structure: ExportStructure,
    settings: Optional[IntakeSettings] = None,
) -> list[str]:
    settings = settings or get_settings()
    recommendations: list[str] = []
    if detection.confidence < settings.scoring.low_confidence:
        recommendations.append("Low confidence detection - consider manual platform selection")
    if detection.confidence >= HIGH_CONFIDENCE and not detection.is_unknown:
        recommendations.append(
            f"High confidence {detection.detected_platform} detection - proceed with platform-specific optimizations"
        )
    if "productName" in mapping:
        recommendations.append("Product name column detected - ready for title optimization")
    if "description" in mapping:
        recommendations.append("Description column detected - ready for content enhancement")
    if "price" in mapping:
        recommendations.append("Price column detected - ready for value proposition optimization")
    if "category" not in mapping:
        recommendations.append("No category column detected - consider adding product categorization")
    if detection.detected_platform == "amazon" and "sku" not in mapping:
        recommendations.append("Amazon platform detected but no ASIN/SKU column found")
    if structure.platform_specific_columns:
        recommendations.append(
            f"{len(structure.platform_specific_columns)} platform-specific optimizations available"
        )
    return recommendations


def supported_optimizations(platform: str) -> list[str]:
    return list(BASE_OPTIMIZATIONS) + list(PLATFORM_OPTIMIZATIONS.get(platform, ()))


def resolve_parsed(
    parsed: ParseResult,
    mapping_overrides: Optional[Mapping[str, Optional[str]]] = None,
    settings: Optional[IntakeSettings] = None,
) -> IntakeResult:
    """Detection, mapping and planning for an already successful parse."""
    settings = settings or get_settings()
    detection = analyse_platform(parsed.headers, parsed.sample_data, settings)
    mapping = generate_column_mapping(parsed.headers, detection.detected_platform, settings)
    if mapping_overrides:
        mapping = merge_mapping_overrides(mapping, mapping_overrides, parsed.headers)
    structure = plan_export_structure(parsed.headers, detection.detected_platform)
    return IntakeResult(
        parse=parsed,
        detection=detection,
        mapping=mapping,
        export=structure,
        recommendations=generate_recommendations(detection, mapping, structure, settings),
        supported_optimizations=supported_optimizations(detection.detected_platform),
    )


def run_intake(
    raw: bytes,
    filename: str = "upload.csv",
    mime_type: Optional[str] = None,
    plan: Optional[str] = None,
    delimiter: Optional[str] = None,
    has_header: Optional[bool] = None,
    mapping_overrides: Optional[Mapping[str, Optional[str]]] = None,
    settings: Optional[IntakeSettings] = None,
) -> IntakeResult:
    started = time.perf_counter()
    settings = settings or get_settings()
    parsed = parse_bytes(raw, filename, mime_type, plan, delimiter, has_header, settings)
    if not parsed.success:
        return IntakeResult(parse=parsed, processing_ms=(time.perf_counter() - started) * 1000)

    try:
        result = resolve_parsed(parsed, mapping_overrides, settings)
    except Exception:
        logger.exception("intake failed after parsing %s", filename)
        failed = ParseResult.failure(UNEXPECTED_ERROR, file_size=len(raw))
        return IntakeResult(parse=failed, processing_ms=(time.perf_counter() - started) * 1000)

    result.processing_ms = (time.perf_counter() - started) * 1000
    return result


def intake_file(path: "str | Path", **kwargs: Any) -> IntakeResult:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if path.suffix.lower() == ".tsv" and kwargs.get("delimiter") is None:
        kwargs["delimiter"] = "\t"
    return run_intake(path.read_bytes(), filename=path.name, **kwargs)


def build_payload(result: IntakeResult, input_path: Path) -> dict[str, Any]:
    anomalies = result.anomalies
    payload: dict[str, Any] = {
        "file": input_path.name,
        "success": result.success,
        "error": result.parse.error,
        "parse": result.parse.to_dict(),
        "detection": result.detection.to_dict() if result.detection else None,
        "columnMapping": dict(result.mapping),
        "unmappedFields": unmapped_fields(result.mapping) if result.success else [],
        "exportStructure": result.export.to_dict() if result.export else None,
        "recommendations": list(result.recommendations),
        "supportedOptimizations": list(result.supported_optimizations),
        "processingInfo": {
            "processingTime": round(result.processing_ms, 3),
            "evidenceCount": len(result.detection.evidence) if result.detection else 0,
            "columnsAnalyzed": len(result.parse.headers),
            "rowsAnalyzed": result.parse.total_rows,
        },
        "issues": group_by_severity(anomalies),
        "issue_counts": count_codes(anomalies),
    }
    payload = stamp_payload("csv_intake.detect", payload, TOOL_VERSION)
    payload["run_summary"] = build_run_summary(
        tool="csv-intake",
        script="intake.py",
        input_path=input_path,
        status="ok" if result.success else "failed",
        metrics={
            "detected_platform": result.platform,
            "confidence": result.detection.confidence if result.detection else 0,
            "total_rows": result.parse.total_rows,
            "columns": len(result.parse.headers),
            "delimiter": result.parse.delimiter,
            "encoding": result.parse.detected_encoding,
        },
        warnings=[anomaly.message for anomaly in anomalies],
    )
    return payload


def main() -> int:
    if len(sys.argv) < 2:
        print(json.dumps({"error": "Usage: intake.py <file> [plan]"}))
        return 1

    input_path = Path(sys.argv[1])
    if not input_path.exists():
        print(json.dumps({"error": f"File not found: {input_path}"}))
        return 1

    plan = sys.argv[2] if len(sys.argv) >= 3 else None
    result = intake_file(input_path, plan=plan)
    print(json.dumps(build_payload(result, input_path), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
