#!/usr/bin/env python3
"""
csv-intake export_planner.py

Plans the enhanced export: every original column, verbatim and in order,
followed by the generated columns for the detected platform. A generated
name the file already uses gets a numeric suffix so no source column is
shadowed.
"""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))
from intake_modules.shared import GENERATED_COLUMN_PREFIX, ExportStructure


def _prefixed(*names: str) -> tuple[str, ...]:
    return tuple(GENERATED_COLUMN_PREFIX + name for name in names)


STANDARD_GENERATED_COLUMNS = _prefixed(
    "Product_Title",
    "Description",
    "SEO_Title",
    "Meta_Description",
    "Call_To_Action",
    "Bullet_Point_1",
    "Bullet_Point_2",
    "Bullet_Point_3",
    "Key_Features",
    "Tags",
    "TikTok_Hook_1",
    "TikTok_Hook_2",
    "Instagram_Caption_1",
    "Instagram_Caption_2",
    "Emotional_Hook_1",
    "Trust_Signal_1",
    "Competitor_Advantage_1",
    "Price_Anchor",
)

PLATFORM_GENERATED_COLUMNS = {
    "amazon": _prefixed("Amazon_Backend_Keywords", "Amazon_Search_Terms", "Amazon_Subject_Matter"),
    "shopify": _prefixed("Shopify_Handle", "Shopify_SEO_Title", "Structured_Data"),
    "ebay": _prefixed("eBay_Auction_Style", "eBay_USP", "eBay_Competitive_Price"),
    "etsy": _prefixed("Etsy_Artisan_Story", "Etsy_Handmade_Feel", "Etsy_Keywords"),
    "woocommerce": _prefixed(
        "WooCommerce_Short_Description",
        "WooCommerce_Attributes",
        "WooCommerce_Categories",
    ),
}


def generated_columns_for(platform: str) -> tuple[str, ...]:
    return PLATFORM_GENERATED_COLUMNS.get(platform, ())


def estimate_size_increase(original_count: int, added_count: int) -> str:
    if original_count <= 0:
        return f"+{added_count} new columns"
    increase = round(added_count / original_count * 100)
    return f"+{increase}% larger ({added_count} new columns)"


def distinct_name(name: str, taken: set[str]) -> str:
    candidate = name
    suffix = 2
    while candidate in taken:
        candidate = f"{name}_{suffix}"
        suffix += 1
    return candidate


def plan_export_structure(headers: list[str], platform: str) -> ExportStructure:
    platform_columns = generated_columns_for(platform)
    taken = set(headers)
    added: list[str] = []
    renamed: list[tuple[str, str]] = []
    for name in STANDARD_GENERATED_COLUMNS + platform_columns:
        actual = distinct_name(name, taken)
        taken.add(actual)
        added.append(actual)
        if actual != name:
            renamed.append((name, actual))
    return ExportStructure(
        preserve_original_columns=tuple(headers),
        add_generated_columns=tuple(added),
        platform_specific_columns=tuple(added[len(STANDARD_GENERATED_COLUMNS):]),
        total_columns=len(headers) + len(added),
        estimated_file_size=estimate_size_increase(len(headers), len(added)),
        renamed_columns=tuple(renamed),
    )
