from __future__ import annotations

import sys
import unittest
from dataclasses import replace
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
SCRIPTS = ROOT / "skills" / "csv-intake" / "scripts"
SAMPLES = ROOT / "sample-data"
sys.path.insert(0, str(SCRIPTS))

from intake_modules.settings import IntakeSettings, ScoringWeights  # noqa: E402
from intake_modules.shared import Evidence, EvidenceKind  # noqa: E402
from intake_modules.signatures import get_signature  # noqa: E402
from loader import load_file  # noqa: E402
from platform_detector import (  # noqa: E402
    HEADERS_ONLY_WARNING,
    LOW_CONFIDENCE_WARNING,
    NO_HEADERS_WARNING,
    UNRELIABLE_WARNING,
    analyse_platform,
    calculate_confidence,
    find_pattern_column,
    pattern_key_variants,
    score_signature,
    supported_platforms,
    validate_detection_result,
)


SHOPIFY_HEADERS = ["Handle", "Title", "Body (HTML)", "Vendor", "Type", "Tags", "Published", "Variant Price"]
SHOPIFY_ROWS = [
    ["linen-shirt", "Linen Shirt", "<p>Linen</p>", "Northwind", "Shirts", "linen", "true", "49.00"],
    ["canvas-tote", "Canvas Tote", "<p>Tote</p>", "Northwind", "Bags", "canvas", "true", "65.00"],
    ["merino-beanie", "Merino Beanie", "<p>Wool</p>", "Fieldstone", "Hats", "winter", "false", "24.50"],
]


class AnalysePlatformTests(unittest.TestCase):
    def test_shopify_headers_and_rows(self):
        result = analyse_platform(SHOPIFY_HEADERS, SHOPIFY_ROWS)
        self.assertEqual(result.detected_platform, "shopify")
        self.assertGreaterEqual(result.confidence, 60)
        required = [item for item in result.evidence if item.kind == EvidenceKind.REQUIRED_COLUMN]
        self.assertGreaterEqual(len(required), 2)
        self.assertTrue(all(item.platform == "shopify" for item in result.evidence))
        self.assertEqual(result.warnings, [])

    def test_score_breakdown(self):
        score = score_signature(get_signature("shopify"), SHOPIFY_HEADERS, SHOPIFY_ROWS)
        self.assertAlmostEqual(score.required_score, 60.0)
        self.assertAlmostEqual(score.optional_score, 5 / 8 * 25)
        self.assertAlmostEqual(score.pattern_score, 9.0)
        self.assertAlmostEqual(score.bonus, 5.0)

    def test_bonus_is_capped(self):
        headers = SHOPIFY_HEADERS + ["Option1 Name"]
        score = score_signature(get_signature("shopify"), headers, SHOPIFY_ROWS)
        self.assertAlmostEqual(score.bonus, 5.0)

    def test_pattern_score_is_capped(self):
        weights = ScoringWeights(pattern_points=10.0)
        score = score_signature(get_signature("shopify"), SHOPIFY_HEADERS, SHOPIFY_ROWS, weights)
        self.assertAlmostEqual(score.pattern_score, 15.0)

    def test_headers_only_detection_warns(self):
        result = analyse_platform(SHOPIFY_HEADERS, [])
        self.assertEqual(result.detected_platform, "shopify")
        self.assertEqual(result.warnings, [HEADERS_ONLY_WARNING])

    def test_no_headers(self):
        result = analyse_platform([], [["a"]])
        self.assertEqual(result.detected_platform, "unknown")
        self.assertEqual(result.confidence, 0)
        self.assertEqual(result.warnings, [NO_HEADERS_WARNING])
        self.assertEqual(result.candidates, [])

    def test_weak_match_is_unknown(self):
        result = analyse_platform(["Title", "Notes"], [["Mug", "blue"]])
        self.assertEqual(result.detected_platform, "unknown")
        self.assertEqual(result.confidence, 20)
        self.assertIn(LOW_CONFIDENCE_WARNING, result.warnings)
        self.assertIn(UNRELIABLE_WARNING, result.warnings)

    def test_score_equal_to_threshold_is_unknown(self):
        headers = ["Handle", "Title", "Vendor"]
        at_threshold = IntakeSettings(scoring=ScoringWeights(min_threshold=65.0))
        below_threshold = IntakeSettings(scoring=ScoringWeights(min_threshold=64.9))
        self.assertEqual(analyse_platform(headers, [], at_threshold).detected_platform, "unknown")
        self.assertEqual(analyse_platform(headers, [], below_threshold).detected_platform, "shopify")

    def test_equal_scores_keep_registration_order(self):
        result = analyse_platform(["Title"], [])
        self.assertEqual([item.platform for item in result.candidates[:3]], ["shopify", "ebay", "etsy"])
        self.assertEqual(len(result.candidates), len(supported_platforms()))

    def test_evidence_is_capped(self):
        parsed = load_file(SAMPLES / "shopify_export.csv")
        result = analyse_platform(parsed.headers, parsed.sample_data)
        self.assertEqual(result.detected_platform, "shopify")
        self.assertGreaterEqual(result.confidence, 95)
        self.assertEqual(len(result.evidence), 10)
        smaller = replace(IntakeSettings(), evidence_limit=3)
        self.assertEqual(len(analyse_platform(parsed.headers, parsed.sample_data, smaller).evidence), 3)

    def test_repeated_runs_are_equal(self):
        first = analyse_platform(SHOPIFY_HEADERS, SHOPIFY_ROWS)
        second = analyse_platform(SHOPIFY_HEADERS, SHOPIFY_ROWS)
        self.assertEqual(first, second)

    def test_sample_exports(self):
        expected = {
            "amazon_listings.csv": "amazon",
            "woocommerce_products.csv": "woocommerce",
            "khoroshop_cp1251.csv": "khoroshop",
            "unknown_inventory.csv": "unknown",
        }
        for name, platform in expected.items():
            with self.subTest(name=name):
                parsed = load_file(SAMPLES / name)
                result = analyse_platform(parsed.headers, parsed.sample_data)
                self.assertEqual(result.detected_platform, platform)

    def test_cyrillic_headers(self):
        headers = ["Назва", "Ціна", "Категорія", "Опис"]
        rows = [["Чайник", "450.00 грн", "Кухня", "Сталевий"]]
        result = analyse_platform(headers, rows)
        self.assertEqual(result.detected_platform, "khoroshop")


class HelperTests(unittest.TestCase):
    def test_pattern_key_variants(self):
        self.assertEqual(pattern_key_variants("itemId"), ("itemid", "item id", "item_id"))
        self.assertEqual(pattern_key_variants("price"), ("price",))

    def test_find_pattern_column(self):
        self.assertEqual(find_pattern_column("itemId", ["Title", "Item ID"]), 1)
        self.assertEqual(find_pattern_column("listingId", ["listing_id"]), 0)
        self.assertEqual(find_pattern_column("asin", ["Title"]), -1)

    def test_calculate_confidence(self):
        evidence = [
            Evidence("shopify", EvidenceKind.REQUIRED_COLUMN, "Handle", "present", 10, 95),
            Evidence("shopify", EvidenceKind.OPTIONAL_COLUMN, "Tags", "present", 5, 80),
        ]
        self.assertEqual(calculate_confidence(evidence), 90)
        self.assertEqual(calculate_confidence([]), 0)

    def test_supported_platforms(self):
        platforms = supported_platforms()
        self.assertEqual(len(platforms), 10)
        self.assertEqual(platforms[0], "shopify")
        self.assertEqual(platforms[-1], "khoroshop")

    def test_validate_detection_result(self):
        result = analyse_platform(SHOPIFY_HEADERS, SHOPIFY_ROWS)
        self.assertEqual(validate_detection_result(result), {"valid": True, "errors": []})
        broken = replace(result, confidence=150)
        verdict = validate_detection_result(broken)
        self.assertFalse(verdict["valid"])
        self.assertIn("Invalid confidence score", verdict["errors"])
        self.assertFalse(validate_detection_result(replace(result, detected_platform="ebay-ish"))["valid"])


if __name__ == "__main__":
    unittest.main()
