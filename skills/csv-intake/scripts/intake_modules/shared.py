from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

UNKNOWN_PLATFORM = "unknown"
GENERATED_COLUMN_PREFIX = "CopyFlow_"

CANONICAL_FIELDS = (
    "productName",
    "description",
    "price",
    "sku",
    "category",
    "brand",
    "images",
    "weight",
    "dimensions",
    "inventory",
)

# canonical field -> source header; absent key means "not found"
ColumnMapping = dict[str, str]

BonusFn = Callable[[list[str], list[list[str]]], float]


class IntakeError(ValueError):
    """Raised for caller misuse (unknown plan, unsupported export format)."""


class ColumnType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    EMAIL = "email"
    URL = "url"


class EvidenceKind(str, Enum):
    REQUIRED_COLUMN = "required_column"
    OPTIONAL_COLUMN = "optional_column"
    PATTERN_MATCH = "pattern_match"


@dataclass(frozen=True)
class Anomaly:
    """``row`` counts parsed table rows from 1; ``line`` counts physical lines of the file."""

    code: str
    message: str
    row: Optional[int] = None
    line: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "row": self.row, "line": self.line}


@dataclass(frozen=True)
class RawTable:
    rows: tuple[tuple[str, ...], ...] = ()

    @classmethod
    def from_lists(cls, rows: list[list[str]]) -> "RawTable":
        return cls(tuple(tuple(row) for row in rows))

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class ColumnProfile:
    index: int
    name: str
    type: ColumnType
    sample_values: tuple[str, ...]
    null_count: int
    confidence: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "sampleValues": list(self.sample_values),
            "nullCount": self.null_count,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Evidence:
    platform: str
    kind: EvidenceKind
    field: str
    value: str
    weight: int
    confidence: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "type": self.kind.value,
            "field": self.field,
            "value": self.value,
            "weight": self.weight,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class PlatformSignature:
    platform: str
    required: tuple[str, ...]
    optional: tuple[str, ...]
    patterns: tuple[tuple[str, "re.Pattern[str]"], ...]
    weight: int
    bonus: Optional[BonusFn] = None


@dataclass
class PlatformScore:
    platform: str
    score: float
    required_score: float = 0.0
    optional_score: float = 0.0
    pattern_score: float = 0.0
    bonus: float = 0.0
    evidence: list[Evidence] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "score": round(self.score, 2),
            "breakdown": {
                "required": round(self.required_score, 2),
                "optional": round(self.optional_score, 2),
                "pattern": round(self.pattern_score, 2),
                "bonus": round(self.bonus, 2),
            },
            "evidenceCount": len(self.evidence),
        }


@dataclass
class DetectionResult:
    detected_platform: str
    confidence: int
    evidence: list[Evidence] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    candidates: list[PlatformScore] = field(default_factory=list)
    processing_ms: float = field(default=0.0, compare=False)

    @property
    def is_unknown(self) -> bool:
        return self.detected_platform == UNKNOWN_PLATFORM

    def to_dict(self) -> dict[str, Any]:
        return {
            "detectedPlatform": self.detected_platform,
            "confidence": self.confidence,
            "evidence": [item.to_dict() for item in self.evidence],
            "warnings": list(self.warnings),
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "processingTime": round(self.processing_ms, 3),
        }


@dataclass(frozen=True)
class ExportStructure:
    preserve_original_columns: tuple[str, ...]
    add_generated_columns: tuple[str, ...]
    platform_specific_columns: tuple[str, ...]
    total_columns: int
    estimated_file_size: str
    # (generated name, name actually written) for names already taken by the file
    renamed_columns: tuple[tuple[str, str], ...] = ()

    @property
    def output_columns(self) -> list[str]:
        return list(self.preserve_original_columns) + list(self.add_generated_columns)

    def to_dict(self) -> dict[str, Any]:
        return {
            "preserveOriginalColumns": list(self.preserve_original_columns),
            "addCopyFlowColumns": list(self.add_generated_columns),
            "platformSpecificColumns": list(self.platform_specific_columns),
            "totalColumns": self.total_columns,
            "estimatedFileSize": self.estimated_file_size,
            "renamedColumns": dict(self.renamed_columns),
        }


@dataclass(frozen=True)
class Rejection:
    code: str
    message: str
    plan: str
    limit_bytes: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "plan": self.plan,
            "limitBytes": self.limit_bytes,
        }


@dataclass
class ParseResult:
    success: bool
    headers: list[str] = field(default_factory=list)
    sample_data: list[list[str]] = field(default_factory=list)
    total_rows: int = 0
    detected_encoding: str = "unknown"
    column_types: list[ColumnProfile] = field(default_factory=list)
    file_size: int = 0
    processing_ms: float = field(default=0.0, compare=False)
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    delimiter: Optional[str] = None
    encoding_info: dict[str, Any] = field(default_factory=dict)
    anomalies: list[Anomaly] = field(default_factory=list)
    rejection: Optional[Rejection] = None
    rows: list[list[str]] = field(default_factory=list, repr=False)

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        file_size: int,
        processing_ms: float = 0.0,
        rejection: Optional[Rejection] = None,
    ) -> "ParseResult":
        return cls(
            success=False,
            file_size=file_size,
            processing_ms=processing_ms,
            error=error,
            rejection=rejection,
        )

    def to_dict(self, *, include_rows: bool = False) -> dict[str, Any]:
        payload = {
            "success": self.success,
            "headers": list(self.headers),
            "sampleData": [list(row) for row in self.sample_data],
            "totalRows": self.total_rows,
            "detectedEncoding": self.detected_encoding,
            "columnTypes": [profile.to_dict() for profile in self.column_types],
            "fileSize": self.file_size,
            "processingTime": round(self.processing_ms, 3),
            "error": self.error,
            "warnings": list(self.warnings),
            "delimiter": self.delimiter,
            "encodingInfo": dict(self.encoding_info),
            "anomalies": [anomaly.to_dict() for anomaly in self.anomalies],
            "rejection": self.rejection.to_dict() if self.rejection else None,
        }
        if include_rows:
            payload["rows"] = [list(row) for row in self.rows]
        return payload
