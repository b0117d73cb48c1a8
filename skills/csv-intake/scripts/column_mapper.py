#!/usr/bin/env python3
"""
csv-intake column_mapper.py

Maps resolved source headers onto the canonical product fields
(productName, description, price, ...).

Matching order per field:
  1. first header containing any synonym (case-insensitive substring)
  2. closest header by difflib ratio, when no substring hit exists
  3. platform overrides replace the result when the exact header is present
"""

from __future__ import annotations

import logging
import re
import sys
from difflib import SequenceMatcher
from pathlib import Path
from typing import Mapping, Optional

sys.path.insert(0, str(Path(__file__).parent))
from intake_modules.settings import IntakeSettings, get_settings
from intake_modules.shared import CANONICAL_FIELDS, ColumnMapping

logger = logging.getLogger(__name__)

FIELD_SYNONYMS = {
    "productName": ("name", "title", "product name", "product title", "назва"),
    "description": ("description", "body", "content", "опис"),
    "price": ("price", "regular price", "ціна"),
    "sku": ("sku", "model", "артикул"),
    "category": ("category", "categories", "type", "категорія"),
    "brand": ("brand", "vendor", "manufacturer", "бренд"),
    "images": ("image", "images", "photo", "зображення"),
    "weight": ("weight", "вага"),
    "dimensions": ("dimensions", "size", "розмір"),
    "inventory": ("stock", "quantity", "inventory", "наявність"),
}

# platform -> field -> exact header that wins when present
PLATFORM_OVERRIDES = {
    "shopify": {"productName": "Title", "description": "Body (HTML)"},
    "amazon": {"productName": "Product Title", "sku": "ASIN"},
    "woocommerce": {"productName": "Name", "price": "Regular price"},
}

SEPARATOR_RE = re.compile(r"[-_\s.()/]+")


def normalize_header(name: str) -> str:
    return SEPARATOR_RE.sub(" ", name.lower()).strip()


def _substring_match(headers: list[str], synonyms: tuple[str, ...]) -> Optional[str]:
    for header in headers:
        header_l = header.lower()
        if any(synonym in header_l for synonym in synonyms):
            return header
    return None


def _fuzzy_match(headers: list[str], synonyms: tuple[str, ...], min_ratio: float) -> Optional[str]:
    best_header = None
    best_ratio = 0.0
    for header in headers:
        normalized = normalize_header(header)
        if not normalized:
            continue
        for synonym in synonyms:
            ratio = SequenceMatcher(None, normalized, synonym).ratio()
            if ratio > best_ratio:
                best_header = header
                best_ratio = ratio
    if best_header is not None and best_ratio >= min_ratio:
        return best_header
    return None


def generate_column_mapping(
    headers: list[str],
    platform: str,
    settings: Optional[IntakeSettings] = None,
) -> ColumnMapping:
    """Return canonical field -> source header. Fields with no match are absent."""
    settings = settings or get_settings()
    mapping: ColumnMapping = {}

    for field_name, synonyms in FIELD_SYNONYMS.items():
        header = _substring_match(headers, synonyms)
        if header is None:
            header = _fuzzy_match(headers, synonyms, settings.fuzzy_match_ratio)
            if header is not None:
                logger.debug("fuzzy-mapped %s -> %r", field_name, header)
        if header is not None:
            mapping[field_name] = header

    for field_name, exact in PLATFORM_OVERRIDES.get(platform, {}).items():
        if exact in headers:
            mapping[field_name] = exact

    return mapping


def merge_mapping_overrides(
    mapping: ColumnMapping,
    overrides: Mapping[str, Optional[str]],
    headers: list[str],
) -> ColumnMapping:
    """
    Apply caller-chosen mappings on top of ``mapping``.

    An empty or ``None`` target unmaps the field. Targets that are not real
    headers are ignored.
    """
    merged = dict(mapping)
    for field_name, header in overrides.items():
        if not header:
            merged.pop(field_name, None)
            continue
        if header not in headers:
            logger.warning("ignoring mapping override %s -> %r: no such column", field_name, header)
            continue
        merged[field_name] = header
    return merged


def unmapped_fields(mapping: ColumnMapping) -> list[str]:
    return [field_name for field_name in CANONICAL_FIELDS if field_name not in mapping]


def extract_product(headers: list[str], row: list[str], mapping: ColumnMapping) -> dict[str, str]:
    """Pull the mapped canonical fields out of one data row."""
    positions = {}
    for idx, header in enumerate(headers):
        positions.setdefault(header, idx)
    product = {}
    for field_name, header in mapping.items():
        idx = positions.get(header)
        if idx is not None and idx < len(row):
            product[field_name] = row[idx]
        else:
            product[field_name] = ""
    return product
