from __future__ import annotations

import sys
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
SCRIPTS = ROOT / "skills" / "csv-intake" / "scripts"
sys.path.insert(0, str(SCRIPTS))

from byte_decoder import decode_bytes, decode_upload, detect_encoding  # noqa: E402


class DetectEncodingTests(unittest.TestCase):
    def test_utf8_bom_wins_over_everything_else(self):
        guess = detect_encoding(b"\xef\xbb\xbfName,Price\nMug,12\n")
        self.assertEqual(guess.encoding, "utf-8-sig")
        self.assertEqual(guess.method, "bom")
        self.assertTrue(guess.bom)

    def test_plain_ascii(self):
        guess = detect_encoding(b"name,price\nmug,12\n")
        self.assertEqual(guess.encoding, "ascii")
        self.assertEqual(guess.anomalies, [])

    def test_valid_utf8_with_cyrillic(self):
        guess = detect_encoding("Назва,Ціна\nЧайник,450\n".encode("utf-8"))
        self.assertEqual(guess.encoding, "utf-8")
        self.assertEqual(guess.method, "utf-8")

    def test_multibyte_character_cut_by_window_edge_is_still_utf8(self):
        raw = b"a" * 1023 + "Я".encode("utf-8")
        guess = detect_encoding(raw)
        self.assertEqual(guess.encoding, "utf-8")

    def test_windows_1251_is_accepted_on_cyrillic_hit_rate(self):
        raw = "Назва;Ціна;Категорія\nЧайник;450;Кухня\n".encode("cp1251")
        guess = detect_encoding(raw)
        self.assertEqual(guess.encoding, "windows-1251")
        self.assertEqual(guess.method, "legacy")
        self.assertGreaterEqual(guess.confidence, 0.5)

    def test_latin_text_is_not_mistaken_for_cyrillic(self):
        raw = "produit,description\nCafé,crème brûlée très légère\n".encode("latin-1")
        guess = detect_encoding(raw)
        self.assertNotEqual(guess.method, "legacy")
        self.assertEqual([anomaly.code for anomaly in guess.anomalies], ["encoding_ambiguous"])


class DecodeBytesTests(unittest.TestCase):
    def test_bom_is_stripped_from_decoded_text(self):
        decoded = decode_upload(b"\xef\xbb\xbfName,Price\nMug,12\n")
        self.assertTrue(decoded.text.startswith("Name"))
        self.assertTrue(decoded.encoding_info["bom"])
        self.assertTrue(decoded.encoding_info["is_utf8"])

    def test_utf16_with_bom(self):
        decoded = decode_upload("a,b\n1,2\n".encode("utf-16"))
        self.assertEqual(decoded.guess.encoding, "utf-16")
        self.assertEqual(decoded.text, "a,b\n1,2\n")

    def test_windows_1251_round_trips(self):
        original = "Назва;Ціна\nЧайник;450.00 грн\n"
        decoded = decode_upload(original.encode("cp1251"))
        self.assertEqual(decoded.text, original)
        self.assertFalse(decoded.encoding_info["is_utf8"])

    def test_stray_legacy_line_falls_back_to_latin1_and_is_reported(self):
        raw = b"name,note\n" + b"row,plain\n" * 120 + b"bad,\xffvalue\n"
        decoded = decode_upload(raw)
        self.assertEqual(decoded.guess.encoding, "ascii")
        self.assertIn("bad,ÿvalue", decoded.text)
        self.assertEqual(len(decoded.encoding_info["suspicious_chars"]), 1)
        self.assertIn("row 122", decoded.encoding_info["suspicious_chars"][0])
        self.assertIn("encoding_fallback_lines", [anomaly.code for anomaly in decoded.anomalies])

    def test_nul_bytes_are_removed(self):
        decoded = decode_bytes(b"a,b\n1,\x002\n", detect_encoding(b"a,b\n1,\x002\n"))
        self.assertEqual(decoded.text, "a,b\n1,2\n")


if __name__ == "__main__":
    unittest.main()
