#!/usr/bin/env python3
"""
csv-intake platform_detector.py

Scores every registered platform signature against the resolved headers and
a few sample rows, and names the platform that most likely produced the
export. Every signature is scored independently; there is no early exit.

Score per signature (capped at 100):
    required columns   matched / total * 60
    optional columns   matched / total * 25
    data patterns      rate * 3 for each pattern matching > 50% of samples, capped at 15
    platform bonus     signature-specific, capped at 5

A best score at or below 30 is reported as "unknown".

Usage:
    python platform_detector.py <path-to-file>
"""

from __future__ import annotations

import json
import logging
import re
import sys
import time
from pathlib import Path
from typing import Any, Optional

sys.path.insert(0, str(Path(__file__).parent))
from intake_modules.settings import IntakeSettings, ScoringWeights, get_settings
from intake_modules.shared import (
    UNKNOWN_PLATFORM,
    Anomaly,
    DetectionResult,
    Evidence,
    EvidenceKind,
    ExportStructure,
    PlatformScore,
    PlatformSignature,
)
from intake_modules.signatures import SIGNATURES, platform_ids

logger = logging.getLogger(__name__)

REQUIRED_EVIDENCE = (10, 95)  # weight, confidence
OPTIONAL_EVIDENCE = (5, 80)
PATTERN_EVIDENCE_WEIGHT = 7

NO_HEADERS_WARNING = "No headers provided"
HEADERS_ONLY_WARNING = "No sample data provided - detection based on headers only"
LOW_CONFIDENCE_WARNING = "Low confidence detection - manual verification recommended"
UNRELIABLE_WARNING = "Platform could not be reliably detected"

WARNING_CODES = {
    HEADERS_ONLY_WARNING: "detection_headers_only",
    LOW_CONFIDENCE_WARNING: "detection_low_confidence",
    UNRELIABLE_WARNING: "detection_unreliable",
    NO_HEADERS_WARNING: "detection_unreliable",
}

CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


# ══════════════════════════════════════════════════════════════════════════════
# MATCHING HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def header_matches(header: str, column: str) -> bool:
    header_l = header.lower()
    column_l = column.lower()
    return header_l == column_l or column_l in header_l


def matched_columns(columns: tuple[str, ...], headers: list[str]) -> list[str]:
    return [column for column in columns if any(header_matches(header, column) for header in headers)]


def pattern_key_variants(key: str) -> tuple[str, ...]:
    """``itemId`` -> ("itemid", "item id", "item_id")."""
    words = CAMEL_BOUNDARY_RE.split(key)
    variants = [key.lower()]
    if len(words) > 1:
        variants.append(" ".join(words).lower())
        variants.append("_".join(words).lower())
    return tuple(variants)


def find_pattern_column(key: str, headers: list[str]) -> int:
    variants = pattern_key_variants(key)
    for idx, header in enumerate(headers):
        header_l = header.lower()
        if any(variant in header_l for variant in variants):
            return idx
    return -1


# ══════════════════════════════════════════════════════════════════════════════
# SCORING
# ══════════════════════════════════════════════════════════════════════════════

def _pattern_score(
    signature: PlatformSignature,
    headers: list[str],
    sample_rows: list[list[str]],
    weights: ScoringWeights,
) -> tuple[float, list[Evidence]]:
    score = 0.0
    evidence: list[Evidence] = []
    sample = sample_rows[: weights.pattern_sample_rows]
    if not sample:
        return 0.0, evidence

    for key, pattern in signature.patterns:
        idx = find_pattern_column(key, headers)
        if idx == -1:
            continue
        matches = 0
        for row in sample:
            value = row[idx] if idx < len(row) else ""
            if value and pattern.search(value):
                matches += 1
        rate = matches / len(sample)
        if rate > 0.5:
            score += rate * weights.pattern_points
            evidence.append(
                Evidence(
                    platform=signature.platform,
                    kind=EvidenceKind.PATTERN_MATCH,
                    field=headers[idx],
                    value=f"{round(rate * 100)}% match",
                    weight=PATTERN_EVIDENCE_WEIGHT,
                    confidence=round(rate * 100),
                )
            )
    return min(score, weights.pattern_cap), evidence


def score_signature(
    signature: PlatformSignature,
    headers: list[str],
    sample_rows: list[list[str]],
    weights: Optional[ScoringWeights] = None,
) -> PlatformScore:
    """Score one signature. Reads nothing but its arguments."""
    weights = weights or get_settings().scoring
    evidence: list[Evidence] = []

    required = matched_columns(signature.required, headers)
    required_score = len(required) / len(signature.required) * weights.required if signature.required else 0.0
    for column in required:
        evidence.append(
            Evidence(signature.platform, EvidenceKind.REQUIRED_COLUMN, column, "present", *REQUIRED_EVIDENCE)
        )

    optional = matched_columns(signature.optional, headers)
    optional_score = len(optional) / len(signature.optional) * weights.optional if signature.optional else 0.0
    for column in optional:
        evidence.append(
            Evidence(signature.platform, EvidenceKind.OPTIONAL_COLUMN, column, "present", *OPTIONAL_EVIDENCE)
        )

    pattern_score, pattern_evidence = _pattern_score(signature, headers, sample_rows, weights)
    evidence.extend(pattern_evidence)

    bonus = 0.0
    if signature.bonus is not None:
        bonus = min(signature.bonus(headers, sample_rows), weights.bonus_cap)

    total = min(required_score + optional_score + pattern_score + bonus, 100.0)
    return PlatformScore(
        platform=signature.platform,
        score=total,
        required_score=required_score,
        optional_score=optional_score,
        pattern_score=pattern_score,
        bonus=bonus,
        evidence=evidence,
    )


def rank_platforms(
    headers: list[str],
    sample_rows: list[list[str]],
    weights: Optional[ScoringWeights] = None,
) -> list[PlatformScore]:
    scores = [score_signature(signature, headers, sample_rows, weights) for signature in SIGNATURES]
    # sorted() is stable, so equal scores keep registration order
    return sorted(scores, key=lambda item: item.score, reverse=True)


def analyse_platform(
    headers: list[str],
    sample_rows: Optional[list[list[str]]] = None,
    settings: Optional[IntakeSettings] = None,
) -> DetectionResult:
    """Name the platform that most likely produced ``headers`` and ``sample_rows``."""
    started = time.perf_counter()
    settings = settings or get_settings()
    weights = settings.scoring
    sample_rows = sample_rows or []

    if not headers:
        return DetectionResult(
            detected_platform=UNKNOWN_PLATFORM,
            confidence=0,
            warnings=[NO_HEADERS_WARNING],
            processing_ms=(time.perf_counter() - started) * 1000,
        )

    warnings: list[str] = []
    if not sample_rows:
        warnings.append(HEADERS_ONLY_WARNING)

    normalized = [header.strip() for header in headers]
    ranked = rank_platforms(normalized, sample_rows, weights)
    best = ranked[0]

    detected = best.platform if best.score > weights.min_threshold else UNKNOWN_PLATFORM
    confidence = round(min(best.score, 100.0))

    if confidence < weights.low_confidence:
        warnings.append(LOW_CONFIDENCE_WARNING)
    if detected == UNKNOWN_PLATFORM:
        warnings.append(UNRELIABLE_WARNING)

    logger.debug(
        "platform scores: %s",
        ", ".join(f"{item.platform}={item.score:.1f}" for item in ranked),
    )
    logger.debug("detected platform %s (confidence %d)", detected, confidence)

    return DetectionResult(
        detected_platform=detected,
        confidence=confidence,
        evidence=best.evidence[: settings.evidence_limit],
        warnings=warnings,
        candidates=ranked,
        processing_ms=(time.perf_counter() - started) * 1000,
    )


def detection_anomalies(result: DetectionResult) -> list[Anomaly]:
    return [Anomaly(WARNING_CODES.get(message, "detection_unreliable"), message) for message in result.warnings]


def calculate_confidence(evidence: list[Evidence]) -> int:
    """Weight-averaged confidence of ``evidence``; 0 when there is none."""
    total_weight = sum(item.weight for item in evidence)
    if total_weight <= 0:
        return 0
    return round(sum(item.confidence * item.weight for item in evidence) / total_weight)


def supported_platforms() -> list[str]:
    return platform_ids()


def validate_detection_result(
    result: DetectionResult,
    structure: Optional[ExportStructure] = None,
) -> dict[str, Any]:
    errors: list[str] = []
    if not result.detected_platform:
        errors.append("No platform detected")
    elif result.detected_platform != UNKNOWN_PLATFORM and result.detected_platform not in platform_ids():
        errors.append(f"Unsupported platform '{result.detected_platform}'")
    if not 0 <= result.confidence <= 100:
        errors.append("Invalid confidence score")
    if any(item.platform != result.detected_platform for item in result.evidence) and not result.is_unknown:
        errors.append("Evidence mixes platforms")
    if structure is not None and structure.preserve_original_columns is None:
        errors.append("Export structure missing original columns")
    return {"valid": not errors, "errors": errors}


def main() -> int:
    if len(sys.argv) < 2:
        print(json.dumps({"error": "Usage: platform_detector.py <file>"}))
        return 1

    file_path = Path(sys.argv[1])
    if not file_path.exists():
        print(json.dumps({"error": f"File not found: {file_path}"}))
        return 1

    from loader import load_file

    parsed = load_file(file_path)
    if not parsed.success:
        print(json.dumps({"error": parsed.error}))
        return 1
    result = analyse_platform(parsed.headers, parsed.sample_data)
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
