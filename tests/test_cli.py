from __future__ import annotations

import csv
import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "copyflow_intake.cli"]
FIXED_STAMP = "20260301T010203Z"


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["COPYFLOW_INTAKE_OUTPUT_STAMP"] = FIXED_STAMP
    merged_env["PYTHONIOENCODING"] = "utf-8"
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        encoding="utf-8",
        env=merged_env,
    )


class CopyflowIntakeCliTests(unittest.TestCase):
    def test_detect_shopify_returns_exit_0_and_writes_result(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("detect", "sample-data/shopify_export.csv", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Platform: shopify", proc.stderr)
            self.assertIn("Result written:", proc.stderr)
            payload = json.loads((Path(tmpdir) / "detection.json").read_text(encoding="utf-8"))
        self.assertEqual(payload["detection"]["detectedPlatform"], "shopify")
        self.assertEqual(payload["run_summary"]["generated_at"], "1970-01-01T00:00:00Z")

    def test_detect_json_stdout_contains_only_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("detect", "sample-data/amazon_listings.csv", "--json", "--out", tmpdir)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["detection"]["detectedPlatform"], "amazon")
        self.assertEqual(proc.stderr.strip(), "")

    def test_detect_unknown_platform_returns_exit_6(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("detect", "sample-data/unknown_inventory.csv", "--json", "--out", tmpdir)
        self.assertEqual(proc.returncode, 6, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["detection"]["detectedPlatform"], "unknown")

    def test_detect_with_warnings_returns_exit_3(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "ragged.csv"
            source = (ROOT / "sample-data" / "shopify_export.csv").read_text(encoding="utf-8")
            path.write_text(source + "broken-row,Broken\n", encoding="utf-8")
            proc = run_cli("detect", str(path), "--json", "--out", tmpdir)
        self.assertEqual(proc.returncode, 3, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["issue_counts"], {"ragged_row": 1})

    def test_detect_mapping_override(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli(
                "detect",
                "sample-data/shopify_export.csv",
                "--json",
                "--out",
                tmpdir,
                "--map",
                "productName=Handle",
            )
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["columnMapping"]["productName"], "Handle")

    def test_bad_mapping_override_returns_exit_1(self):
        proc = run_cli("detect", "sample-data/shopify_export.csv", "--map", "productName")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Invalid --map value", proc.stderr)

    def test_parse_rejected_file_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.csv"
            path.write_bytes(b"")
            proc = run_cli("parse", str(path), "--out", tmpdir)
            self.assertEqual(proc.returncode, 2, proc.stderr)
            self.assertIn("File is empty", proc.stderr)
            payload = json.loads((Path(tmpdir) / "parse.json").read_text(encoding="utf-8"))
        self.assertEqual(payload["contract"]["name"], "csv_intake.parse")
        self.assertEqual(payload["result"]["rejection"]["code"], "empty_file")

    def test_parse_plan_limit_from_config(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = Path(tmpdir) / "tiny.json"
            config.write_text(json.dumps({"plan_limits": {"free": 16}}), encoding="utf-8")
            proc = run_cli(
                "parse", "sample-data/shopify_export.csv", "--config", str(config), "--json", "--out", tmpdir
            )
        self.assertEqual(proc.returncode, 2, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["result"]["rejection"]["code"], "file_too_large")

    def test_parse_windows_1251_sample_with_rows(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("parse", "sample-data/khoroshop_cp1251.csv", "--json", "--rows", "--out", tmpdir)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        result = json.loads(proc.stdout)["result"]
        self.assertEqual(result["detectedEncoding"], "windows-1251")
        self.assertEqual(result["rows"][0][0], "Чайник керамічний")

    def test_unknown_plan_returns_exit_1(self):
        proc = run_cli("parse", "sample-data/shopify_export.csv", "--plan", "enterprise")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown plan", proc.stderr)

    def test_bad_delimiter_returns_exit_1(self):
        proc = run_cli("parse", "sample-data/shopify_export.csv", "--delimiter", "ab")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Delimiter must be a single character", proc.stderr)

    def test_named_delimiter(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "export.txt"
            path.write_text("name\tnote\nmug\tred, blue\n", encoding="utf-8")
            proc = run_cli("parse", str(path), "--delimiter", "tab", "--json", "--out", tmpdir)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["result"]["headers"], ["name", "note"])

    def test_missing_input_returns_exit_1(self):
        proc = run_cli("detect", "sample-data/does-not-exist.csv")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_report_text_and_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("report", "sample-data/woocommerce_products.csv", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Report written:", proc.stderr)
            text = (Path(tmpdir) / "report.txt").read_text(encoding="utf-8")
            self.assertIn("🛒 Platform: woocommerce", text)

            proc = run_cli("report", "sample-data/woocommerce_products.csv", "--format", "json", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            report = json.loads((Path(tmpdir) / "report.json").read_text(encoding="utf-8"))
        self.assertEqual(report["contract"]["name"], "csv_intake.report")
        self.assertEqual(report["file_overview"]["scanned_at"], "1970-01-01T00:00:00")

    def test_export_writes_csv_and_summary_and_refuses_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("export", "sample-data/shopify_export.csv", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            output = Path(tmpdir) / "shopify_export-copyflow.csv"
            with output.open(newline="", encoding="utf-8") as handle:
                rows = list(csv.reader(handle))
            summary = json.loads((Path(tmpdir) / "shopify_export-copyflow-summary.json").read_text(encoding="utf-8"))

            again = run_cli("export", "sample-data/shopify_export.csv", "--out", tmpdir)
        self.assertEqual(rows[0][0], "Handle")
        self.assertIn("CopyFlow_Shopify_Handle", rows[0])
        self.assertEqual(len(rows), 6)
        self.assertEqual(summary["contract"]["name"], "csv_intake.export_summary")
        self.assertEqual(summary["export"]["rows_written"], 5)
        self.assertEqual(again.returncode, 1)
        self.assertIn("Refusing to overwrite", again.stderr)

    def test_export_xlsx(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("export", "sample-data/amazon_listings.csv", "--format", "xlsx", "--json", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertTrue((Path(tmpdir) / "amazon_listings-copyflow.xlsx").exists())
        self.assertEqual(json.loads(proc.stdout)["export"]["format"], "xlsx")

    def test_config_init_writes_starter_and_refuses_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "copyflow-intake.json"
            proc = run_cli("config", "init", "--path", str(path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            config = json.loads(path.read_text(encoding="utf-8"))
            again = run_cli("config", "init", "--path", str(path))
        self.assertIn("plan_limits", config)
        self.assertEqual(again.returncode, 1)

    def test_explain_known_and_unknown_rules(self):
        proc = run_cli("explain", "ragged_row")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Severity: warning", proc.stdout)
        proc = run_cli("explain", "no_such_rule")
        self.assertEqual(proc.returncode, 1)

    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertTrue(proc.stdout.strip())


if __name__ == "__main__":
    unittest.main()
