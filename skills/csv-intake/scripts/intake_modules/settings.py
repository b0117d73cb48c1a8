"""Runtime configuration for the csv-intake pipeline.

Settings are plain frozen dataclasses. ``get_settings()`` reads environment
overrides once per process; callers that need different values build their
own ``IntakeSettings`` (or load one from JSON) and pass it explicitly.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any

from intake_modules.shared import IntakeError

MB = 1024 * 1024

PLAN_SIZE_LIMITS = {
    "free": 10 * MB,
    "pro": 50 * MB,
    "business": 200 * MB,
}
DEFAULT_PLAN = "free"

SUPPORTED_MIME_TYPES = (
    "text/csv",
    "application/csv",
    "text/plain",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)
SUPPORTED_SUFFIXES = (".csv", ".txt", ".tsv")

ENV_PREFIX = "COPYFLOW_INTAKE_"
SUPPORTED_SETTINGS_SUFFIXES = {".json", ".yml", ".yaml"}


@dataclass(frozen=True)
class ScoringWeights:
    required: float = 60.0
    optional: float = 25.0
    pattern_cap: float = 15.0
    pattern_points: float = 3.0
    bonus_cap: float = 5.0
    min_threshold: float = 30.0
    low_confidence: float = 50.0
    pattern_sample_rows: int = 5


@dataclass(frozen=True)
class IntakeSettings:
    plan_limits: dict[str, int] = field(default_factory=lambda: dict(PLAN_SIZE_LIMITS))
    encoding_window_bytes: int = 1024
    encoding_min_hit_rate: float = 0.5
    chardet_min_confidence: float = 0.5
    dialect_sample_lines: int = 5
    type_sample_limit: int = 100
    profile_sample_values: int = 10
    sample_rows: int = 10
    evidence_limit: int = 10
    ragged_warning_limit: int = 20
    long_header_chars: int = 50
    fuzzy_match_ratio: float = 0.85
    scoring: ScoringWeights = field(default_factory=ScoringWeights)

    def limit_for(self, plan: str) -> int:
        try:
            return self.plan_limits[plan]
        except KeyError:
            known = ", ".join(sorted(self.plan_limits))
            raise IntakeError(f"Unknown plan '{plan}'. Known plans: {known}") from None


def _env_int(name: str, default: int) -> int:
    val = os.getenv(ENV_PREFIX + name)
    if val is None or not val.strip():
        return default
    try:
        return int(val.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    val = os.getenv(ENV_PREFIX + name)
    if val is None or not val.strip():
        return default
    try:
        return float(val.strip())
    except ValueError:
        return default


def _env_choice(name: str, default: str, *, allowed: set[str]) -> str:
    val = os.getenv(ENV_PREFIX + name)
    if val is None:
        return default
    normalized = val.strip().lower()
    if normalized in allowed:
        return normalized
    return default


def default_plan_from_env() -> str:
    return _env_choice("DEFAULT_PLAN", DEFAULT_PLAN, allowed=set(PLAN_SIZE_LIMITS))


def settings_from_env() -> IntakeSettings:
    base = IntakeSettings()
    limits = {
        plan: _env_int(f"{plan.upper()}_LIMIT_BYTES", limit)
        for plan, limit in base.plan_limits.items()
    }
    scoring = replace(
        base.scoring,
        min_threshold=_env_float("MIN_THRESHOLD", base.scoring.min_threshold),
        low_confidence=_env_float("LOW_CONFIDENCE", base.scoring.low_confidence),
    )
    return replace(
        base,
        plan_limits=limits,
        sample_rows=_env_int("SAMPLE_ROWS", base.sample_rows),
        evidence_limit=_env_int("EVIDENCE_LIMIT", base.evidence_limit),
        scoring=scoring,
    )


@lru_cache(maxsize=1)
def get_settings() -> IntakeSettings:
    return settings_from_env()


def settings_from_dict(payload: dict[str, Any], base: IntakeSettings | None = None) -> IntakeSettings:
    base = base or IntakeSettings()
    known = {item.name for item in fields(IntakeSettings)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise IntakeError(f"Unknown settings keys: {', '.join(unknown)}")

    overrides = dict(payload)
    if "scoring" in overrides:
        scoring = overrides["scoring"]
        if not isinstance(scoring, dict):
            raise IntakeError("'scoring' must be an object")
        scoring_known = {item.name for item in fields(ScoringWeights)}
        bad = sorted(set(scoring) - scoring_known)
        if bad:
            raise IntakeError(f"Unknown scoring keys: {', '.join(bad)}")
        overrides["scoring"] = replace(base.scoring, **scoring)
    if "plan_limits" in overrides:
        overrides["plan_limits"] = {**base.plan_limits, **overrides["plan_limits"]}
    return replace(base, **overrides)


def load_settings_file(path: "str | Path") -> IntakeSettings:
    path = Path(path)
    if not path.exists():
        raise IntakeError(f"Config not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SETTINGS_SUFFIXES:
        raise IntakeError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise IntakeError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise IntakeError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise IntakeError("Config root must be a JSON object.")
    return settings_from_dict(payload, base=get_settings())


def starter_config() -> dict[str, Any]:
    base = IntakeSettings()
    return {
        "plan_limits": dict(base.plan_limits),
        "sample_rows": base.sample_rows,
        "evidence_limit": base.evidence_limit,
        "ragged_warning_limit": base.ragged_warning_limit,
        "scoring": {
            "required": base.scoring.required,
            "optional": base.scoring.optional,
            "pattern_cap": base.scoring.pattern_cap,
            "bonus_cap": base.scoring.bonus_cap,
            "min_threshold": base.scoring.min_threshold,
            "low_confidence": base.scoring.low_confidence,
        },
    }
