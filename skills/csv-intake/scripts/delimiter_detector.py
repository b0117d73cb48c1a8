#!/usr/bin/env python3
"""
csv-intake delimiter_detector.py

Picks the field delimiter of a decoded export by counting candidate
characters over the first few lines.

Public API:
    delimiter = detect_delimiter(text)
    delimiter = DelimiterCounter().detect(sample)
    delimiter = resolve_delimiter("tab")
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterable

sys.path.insert(0, str(Path(__file__).parent))
from intake_modules.shared import IntakeError

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t", "|")
DEFAULT_DELIMITER = ","
DELIMITER_NAMES = {
    ",": "comma",
    ";": "semicolon",
    "\t": "tab",
    "|": "pipe",
}
DELIMITER_ALIASES = {name: delim for delim, name in DELIMITER_NAMES.items()}
DELIMITER_ALIASES["\\t"] = "\t"
FORBIDDEN_DELIMITERS = {"\"", "\n", "\r"}


class DelimiterCounter:
    """
    Counts each candidate over the sample; the largest count wins.

    Ties and an all-zero sample resolve to comma. Quotes are not respected,
    so a delimiter that only appears inside quoted text still counts.
    """

    def __init__(self, candidates: Iterable[str] = CANDIDATE_DELIMITERS, default: str = DEFAULT_DELIMITER):
        self.candidates = tuple(candidates)
        self.default = default

    def counts(self, sample: str) -> dict[str, int]:
        return {delim: sample.count(delim) for delim in self.candidates}

    def detect(self, sample: str) -> str:
        counts = self.counts(sample)
        best = self.default
        best_count = counts.get(self.default, 0)
        for delim, count in counts.items():
            if count > best_count:
                best = delim
                best_count = count
        logger.debug("delimiter counts %s -> %r", counts, best)
        return best


def leading_lines(text: str, limit: int = 5) -> str:
    return "\n".join(text.splitlines()[:limit])


def detect_delimiter(text: str, sample_lines: int = 5, strategy: DelimiterCounter | None = None) -> str:
    strategy = strategy or DelimiterCounter()
    return strategy.detect(leading_lines(text, sample_lines))


def delimiter_name(delimiter: str) -> str:
    return DELIMITER_NAMES.get(delimiter, repr(delimiter))


def resolve_delimiter(value: str) -> str:
    """
    Turn a caller-supplied delimiter into the single character to split on.

    Accepts the names ``comma``, ``semicolon``, ``tab`` and ``pipe`` and the
    two-character escape ``\\t``. Raises IntakeError for anything that is not
    one usable character.
    """
    delimiter = DELIMITER_ALIASES.get(value.lower(), value) if len(value) > 1 else value
    if len(delimiter) != 1 or delimiter in FORBIDDEN_DELIMITERS:
        raise IntakeError(
            f"Delimiter must be a single character or one of {', '.join(sorted(DELIMITER_NAMES.values()))}; "
            f"got {value!r}"
        )
    return delimiter
