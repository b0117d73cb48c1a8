from __future__ import annotations

import csv
import sys
import tempfile
import unittest
from pathlib import Path

from openpyxl import load_workbook


ROOT = Path(__file__).resolve().parents[1]
SCRIPTS = ROOT / "skills" / "csv-intake" / "scripts"
SAMPLES = ROOT / "sample-data"
sys.path.insert(0, str(SCRIPTS))

from export_planner import STANDARD_GENERATED_COLUMNS, plan_export_structure  # noqa: E402
from exporter import build_export_rows, write_export  # noqa: E402
from intake import intake_file, run_intake  # noqa: E402
from intake_modules.shared import IntakeError  # noqa: E402
from loader import parse_bytes  # noqa: E402


def read_csv(path: Path) -> list[list[str]]:
    with path.open(newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))


class WriteExportTests(unittest.TestCase):
    def test_csv_keeps_quoted_values_intact(self):
        parsed = parse_bytes(b'name,desc\n"Mug","Holds 12oz, ""big""\nsecond line"\n')
        structure = plan_export_structure(parsed.headers, "unknown")
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "out.csv"
            summary = write_export(parsed, structure, output)
            rows = read_csv(output)
        self.assertEqual(rows[0], ["name", "desc", *STANDARD_GENERATED_COLUMNS])
        self.assertEqual(rows[1][:2], ["Mug", 'Holds 12oz, "big"\nsecond line'])
        self.assertEqual(rows[1][2:], [""] * len(STANDARD_GENERATED_COLUMNS))
        self.assertEqual(summary["rows_written"], 1)
        self.assertEqual(summary["columns_written"], 20)
        self.assertEqual(summary["anomalies"], [])

    def test_generated_values_fill_their_columns(self):
        result = intake_file(SAMPLES / "shopify_export.csv")
        generated = [{"CopyFlow_Product_Title": "Linen Shirt, Classic Cut", "CopyFlow_Shopify_Handle": "linen"}]
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "shopify.csv"
            write_export(result.parse, result.export, output, generated)
            rows = read_csv(output)
        header = rows[0]
        self.assertEqual(header[:12], result.parse.headers)
        self.assertEqual(rows[1][header.index("CopyFlow_Product_Title")], "Linen Shirt, Classic Cut")
        self.assertEqual(rows[1][header.index("CopyFlow_Shopify_Handle")], "linen")
        self.assertEqual(rows[2][header.index("CopyFlow_Product_Title")], "")
        self.assertEqual(len(rows), 6)

    def test_overflow_fields_get_positional_columns(self):
        parsed = parse_bytes(b"a,b\n1,2\n3,4,5\n")
        structure = plan_export_structure(parsed.headers, "unknown")
        columns, rows, anomalies = build_export_rows(parsed, structure)
        self.assertEqual(columns[:3], ["a", "b", "Column 3"])
        self.assertEqual(columns[3], STANDARD_GENERATED_COLUMNS[0])
        self.assertEqual(rows[0][:3], ["1", "2", ""])
        self.assertEqual(rows[1][:3], ["3", "4", "5"])
        self.assertEqual([anomaly.code for anomaly in anomalies], ["export_overflow_fields"])

    def test_generated_names_already_in_file_get_suffixed(self):
        parsed = parse_bytes(
            b"Handle,Title,CopyFlow_Description,CopyFlow_Shopify_Handle\nmug,Mug,old copy,old-handle\n"
        )
        structure = plan_export_structure(parsed.headers, "shopify")
        generated = [{"CopyFlow_Description": "new copy", "CopyFlow_Shopify_Handle": "mug-new"}]
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "collide.csv"
            summary = write_export(parsed, structure, output, generated)
            rows = read_csv(output)
        header = rows[0]
        self.assertEqual(len(header), len(set(header)))
        self.assertEqual(rows[1][header.index("CopyFlow_Description")], "old copy")
        self.assertEqual(rows[1][header.index("CopyFlow_Description_2")], "new copy")
        self.assertEqual(rows[1][header.index("CopyFlow_Shopify_Handle")], "old-handle")
        self.assertEqual(rows[1][header.index("CopyFlow_Shopify_Handle_2")], "mug-new")
        self.assertEqual(
            [anomaly["code"] for anomaly in summary["anomalies"]],
            ["export_column_renamed", "export_column_renamed"],
        )

    def test_xlsx_export(self):
        result = intake_file(SAMPLES / "woocommerce_products.csv")
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "woo.xlsx"
            summary = write_export(result.parse, result.export, output)
            sheet = load_workbook(output).active
            header = [cell.value for cell in sheet[1]]
            first_sku = sheet.cell(row=2, column=3).value
            max_row = sheet.max_row
        self.assertEqual(summary["format"], "xlsx")
        self.assertEqual(header[:18], result.parse.headers)
        self.assertEqual(len(header), result.export.total_columns)
        self.assertEqual(first_sku, "WC-MUG-01")
        self.assertEqual(max_row, 4)

    def test_unsupported_format(self):
        result = intake_file(SAMPLES / "shopify_export.csv")
        with self.assertRaises(IntakeError):
            write_export(result.parse, result.export, Path(tempfile.gettempdir()) / "out.json")

    def test_failed_parse_cannot_be_exported(self):
        result = run_intake(b"", "empty.csv")
        structure = plan_export_structure([], "unknown")
        with self.assertRaises(IntakeError):
            write_export(result.parse, structure, Path(tempfile.gettempdir()) / "out.csv")

    def test_structure_for_other_headers_is_refused(self):
        parsed = parse_bytes(b"a,b\n1,2\n")
        with self.assertRaises(IntakeError):
            build_export_rows(parsed, plan_export_structure(["x", "y"], "unknown"))


if __name__ == "__main__":
    unittest.main()
