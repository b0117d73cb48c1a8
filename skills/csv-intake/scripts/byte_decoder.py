#!/usr/bin/env python3
"""
csv-intake byte_decoder.py

Decides which text encoding an uploaded export uses and decodes it.

Detection order:
  1. Byte-order mark in the leading window
  2. No high bytes at all          -> ascii
  3. Window is valid UTF-8         -> utf-8
  4. Fixed legacy candidates, accepted on a character-class hit rate
  5. chardet guess above a confidence floor
  6. utf-8 with replacement (flagged as ambiguous)

Decoding is line-by-line so a file with a few stray legacy lines still loads.
"""

from __future__ import annotations

import codecs
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import chardet

sys.path.insert(0, str(Path(__file__).parent))
from intake_modules.settings import IntakeSettings, get_settings
from intake_modules.shared import Anomaly

logger = logging.getLogger(__name__)

BOM_ENCODINGS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)

# candidate encoding -> letters expected once the sample decodes correctly
LEGACY_CANDIDATES = (
    ("windows-1251", re.compile(r"[а-яёіїєґ]", re.IGNORECASE)),
)

UTF8_FAMILY = {"utf-8", "utf-8-sig", "ascii"}


@dataclass
class EncodingGuess:
    encoding: str
    method: str
    confidence: float
    bom: bool = False
    anomalies: list[Anomaly] = field(default_factory=list)


@dataclass
class DecodedText:
    text: str
    guess: EncodingGuess
    encoding_info: dict[str, Any]
    anomalies: list[Anomaly]


def _has_high_bytes(sample: bytes) -> bool:
    return any(byte >= 0x80 for byte in sample)


def _is_utf8(sample: bytes) -> bool:
    # final=False keeps a multi-byte sequence cut by the window edge from failing
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        decoder.decode(sample, final=False)
    except UnicodeDecodeError:
        return False
    return True


def _hit_rate(text: str, pattern: "re.Pattern[str]") -> float:
    letters = [ch for ch in text if ch.isalpha()]
    if not letters:
        return 0.0
    hits = sum(1 for ch in letters if pattern.match(ch))
    return hits / len(letters)


def _codec_exists(name: str) -> bool:
    try:
        codecs.lookup(name)
    except LookupError:
        return False
    return True


def detect_encoding(raw: bytes, settings: Optional[IntakeSettings] = None) -> EncodingGuess:
    """Guess the encoding of ``raw`` from its leading window."""
    settings = settings or get_settings()
    head = raw[: settings.encoding_window_bytes]

    for bom, encoding in BOM_ENCODINGS:
        if head.startswith(bom):
            return EncodingGuess(encoding, "bom", 1.0, bom=True)

    if not _has_high_bytes(head):
        return EncodingGuess("ascii", "ascii", 1.0)

    if _is_utf8(head):
        return EncodingGuess("utf-8", "utf-8", 0.99)

    for encoding, pattern in LEGACY_CANDIDATES:
        sample = head.decode(encoding, errors="replace")
        rate = _hit_rate(sample, pattern)
        logger.debug("encoding candidate %s hit rate %.2f", encoding, rate)
        if rate >= settings.encoding_min_hit_rate:
            return EncodingGuess(encoding, "legacy", round(rate, 2))

    result = chardet.detect(head)
    guessed = (result.get("encoding") or "").lower()
    confidence = round(result.get("confidence") or 0.0, 2)
    if (
        guessed
        and guessed not in UTF8_FAMILY
        and confidence >= settings.chardet_min_confidence
        and _codec_exists(guessed)
    ):
        anomaly = Anomaly(
            "encoding_ambiguous",
            f"Encoding guessed as {guessed} (confidence {confidence:.2f}); verify text looks correct",
        )
        return EncodingGuess(guessed, "chardet", confidence, anomalies=[anomaly])

    anomaly = Anomaly(
        "encoding_ambiguous",
        "Could not determine file encoding; decoded as UTF-8 and unreadable bytes may be replaced",
    )
    return EncodingGuess("utf-8", "default", 0.0, anomalies=[anomaly])


def _decode_line(raw_line: bytes, preferred_encoding: str) -> str | None:
    for enc in ("utf-8", preferred_encoding):
        try:
            return raw_line.decode(enc)
        except (LookupError, UnicodeDecodeError):
            continue
    return None


def decode_bytes(raw: bytes, guess: EncodingGuess) -> DecodedText:
    """
    Decode ``raw`` using ``guess``.

    BOM-marked input is decoded in one pass. Everything else is decoded line
    by line: UTF-8, then the guessed encoding, then latin-1. NUL bytes are
    stripped so they never reach the tokenizer.
    """
    anomalies = list(guess.anomalies)
    suspicious: list[str] = []

    if guess.bom:
        text = raw.decode(guess.encoding, errors="replace")
    else:
        decoded_lines: list[str] = []
        for row_idx, raw_line in enumerate(raw.split(b"\n"), start=1):
            decoded = _decode_line(raw_line, guess.encoding)
            if decoded is None:
                try:
                    raw_line.decode("utf-8")
                except UnicodeDecodeError as exc:
                    bad_byte = raw_line[exc.start : exc.end]
                    suspicious.append(f"row {row_idx}: byte {bad_byte!r} at position {exc.start}")
                decoded = raw_line.decode("latin-1")
            decoded_lines.append(decoded.replace("\x00", ""))
        text = "\n".join(decoded_lines)

    text = text.lstrip("\ufeff")

    if suspicious:
        anomalies.append(
            Anomaly(
                "encoding_fallback_lines",
                f"{len(suspicious)} line(s) did not decode as UTF-8 or {guess.encoding} and were read as latin-1",
            )
        )

    encoding_info = {
        "detected": guess.encoding,
        "method": guess.method,
        "confidence": guess.confidence,
        "is_utf8": guess.encoding in UTF8_FAMILY,
        "bom": guess.bom,
        "suspicious_chars": suspicious[:10],
    }
    logger.debug("decoded %d bytes as %s via %s", len(raw), guess.encoding, guess.method)
    return DecodedText(text=text, guess=guess, encoding_info=encoding_info, anomalies=anomalies)


def decode_upload(raw: bytes, settings: Optional[IntakeSettings] = None) -> DecodedText:
    return decode_bytes(raw, detect_encoding(raw, settings))
