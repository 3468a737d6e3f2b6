"""
Unit tests for Upload Formats.

Tests the multi-fund and single-fund uploads, the year-column upload, bulk
general fund lines and the portfolio export round trip.
"""

import unittest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from fund_dashboard.config import ROUND_TRIP_TOLERANCE
from fund_dashboard.models import Fund, GeneralFund, Portfolio, PortfolioPosition
from fund_dashboard.data.upload_formats import (
    UploadFormatError,
    parse_multi_fund_upload,
    multi_fund_upload_to_records,
    export_multi_fund_upload,
    multi_fund_template,
    parse_single_fund_upload,
    single_fund_upload_to_templates,
    match_fund_by_name,
    parse_year_column_upload,
    parse_general_fund_cashflow_lines,
    export_portfolio_cashflows,
    import_portfolio_cashflows
)

MULTI_FUND_HEADER = (
    "Fund,Vintage,Type,Subtype,Geography,"
    "Year 1,Year 2,Year 3,Year 4,Year 5,Year 6,Year 7,Year 8,Year 9,Year 10,Year 11,Year 12"
)

MULTI_FUND_TEXT = "\n".join([
    "# comment line",
    MULTI_FUND_HEADER,
    "QGP II,2023,FOF,VC,India,-29.1,-15.52,-41.09,-2.09,25.36,10.56,36.94,51.43,47.00,54.83,4.16,0",
    "Short Row,2023,PE,Tech,EU,-10,-20",
    "Quadrum,2024,PE,,EU,-38.53,-48.21,-20.0,21.74,25.36,41.86,41.71,25.14,14.69,14.02,4.16,0",
])


class TestMultiFundUpload(unittest.TestCase):
    """Test the multi-fund 12-year format."""

    def test_parse(self):
        """Test comment lines are ignored and short rows skipped."""
        with self.assertLogs("fund_dashboard.data.upload_formats", level="WARNING"):
            uploads = parse_multi_fund_upload(MULTI_FUND_TEXT)

        self.assertEqual([u.name for u in uploads], ["QGP II", "Quadrum"])
        self.assertEqual(uploads[0].vintage, 2023)
        self.assertEqual(list(uploads[0].yearly.keys()), list(range(1, 13)))
        self.assertAlmostEqual(uploads[0].yearly[1], -0.291)
        self.assertEqual(uploads[0].yearly[12], 0.0)
        self.assertEqual(uploads[1].subtype, "PE")

    def test_to_records(self):
        """Test year mapping, sign split and zero-cell skipping."""
        uploads = parse_multi_fund_upload(MULTI_FUND_TEXT)
        funds, cashflows = multi_fund_upload_to_records(uploads, user_id="user-1")

        self.assertEqual(len(funds), 2)
        self.assertEqual(funds[0].expected_lifespan, 10)
        self.assertEqual(funds[0].management_fee_rate, 2.0)
        self.assertEqual(funds[0].description, "FOF fund focused on VC in India")

        qgp = [cf for cf in cashflows if cf.fund_id == funds[0].id]
        self.assertEqual(len(qgp), 11)
        self.assertEqual([cf.year for cf in qgp], list(range(2023, 2034)))

        first = qgp[0]
        self.assertAlmostEqual(first.net_cashflow_percentage, -0.291)
        self.assertAlmostEqual(first.contributions_percentage, -0.291)
        self.assertEqual(first.distributions_percentage, 0.0)
        self.assertAlmostEqual(first.nav_percentage, 0.9)

        fifth = qgp[4]
        self.assertAlmostEqual(fifth.distributions_percentage, 0.2536)
        self.assertEqual(fifth.contributions_percentage, 0.0)
        self.assertEqual(qgp[-1].nav_percentage, 0.0)

    def test_export_round_trip(self):
        """Test exporting and re-parsing keeps the yearly values."""
        uploads = parse_multi_fund_upload(MULTI_FUND_TEXT)
        funds, cashflows = multi_fund_upload_to_records(uploads)
        reparsed = parse_multi_fund_upload(export_multi_fund_upload(funds, cashflows))

        for original, again in zip(uploads, reparsed):
            self.assertEqual(original.name, again.name)
            for offset in range(1, 13):
                self.assertAlmostEqual(original.yearly[offset], again.yearly[offset])

    def test_quoted_name_with_comma(self):
        """Test a quoted fund name keeps its comma and all twelve years."""
        values = ",".join(str(-offset) for offset in range(1, 13))
        text = MULTI_FUND_HEADER + '\n"Alpha, LP",2020,PE,Buyout,US,' + values
        uploads = parse_multi_fund_upload(text)

        self.assertEqual(len(uploads), 1)
        self.assertEqual(uploads[0].name, "Alpha, LP")
        self.assertEqual(uploads[0].vintage, 2020)
        self.assertEqual(uploads[0].geography, "US")
        self.assertAlmostEqual(uploads[0].yearly[1], -0.01)
        self.assertAlmostEqual(uploads[0].yearly[12], -0.12)

    def test_blank_last_year_is_zero(self):
        """Test an empty Year 12 cell is read as 0 rather than a short row."""
        text = MULTI_FUND_HEADER + "\nAlpha,2020,PE,Buyout,US,-10,-20,0,0,10,20,30,0,0,0,5,"
        uploads = parse_multi_fund_upload(text)

        self.assertEqual(len(uploads), 1)
        self.assertAlmostEqual(uploads[0].yearly[11], 0.05)
        self.assertEqual(uploads[0].yearly[12], 0.0)

    def test_export_quotes_name_with_comma(self):
        values = ",".join(["-10"] * 6 + ["10"] * 6)
        uploads = parse_multi_fund_upload(MULTI_FUND_HEADER + '\n"Alpha, LP",2020,PE,Buyout,US,' + values)
        funds, cashflows = multi_fund_upload_to_records(uploads)

        text = export_multi_fund_upload(funds, cashflows)
        reparsed = parse_multi_fund_upload(text)

        self.assertIn('"Alpha, LP"', text)
        self.assertEqual(reparsed[0].name, "Alpha, LP")
        self.assertAlmostEqual(reparsed[0].yearly[12], 0.1)

    def test_template_parses(self):
        """Test the downloadable template is itself a valid upload."""
        self.assertEqual(len(parse_multi_fund_upload(multi_fund_template())), 3)

    def test_missing_header(self):
        """Test a file without a header row is rejected."""
        rows = MULTI_FUND_TEXT.splitlines()[2:]
        with self.assertRaises(UploadFormatError):
            parse_multi_fund_upload("\n".join(rows))

    def test_too_few_lines(self):
        with self.assertRaises(UploadFormatError):
            parse_multi_fund_upload(MULTI_FUND_HEADER)

    def test_non_numeric_value(self):
        """Test text in a year column is rejected."""
        text = MULTI_FUND_HEADER + "\nBad,2023,PE,Tech,EU,-10,abc,0,0,0,0,0,0,0,0,0,0"
        with self.assertRaises(UploadFormatError):
            parse_multi_fund_upload(text)

    def test_non_numeric_vintage(self):
        text = MULTI_FUND_HEADER + "\nBad,soon,PE,Tech,EU,-10,0,0,0,0,0,0,0,0,0,0,0"
        with self.assertRaises(UploadFormatError):
            parse_multi_fund_upload(text)


class TestSingleFundUpload(unittest.TestCase):
    """Test the single-fund 13-year format."""

    TEXT = "Alpha Fund,2021,50000000,Venture Capital\n-20,-25,-15,-10,-5,5,10,20,30,40,30,15,5"

    def test_parse(self):
        upload = parse_single_fund_upload(self.TEXT)

        self.assertEqual(upload.fund_name, "Alpha Fund")
        self.assertEqual(upload.vintage, 2021)
        self.assertEqual(upload.commitment_amount, 50_000_000)
        self.assertEqual(upload.fund_type, "Venture Capital")
        self.assertEqual(list(upload.yearly.keys()), list(range(1, 14)))
        self.assertAlmostEqual(upload.yearly[1], -0.2)

    def test_default_type_and_optional_rates(self):
        upload = parse_single_fund_upload("Beta,2020,1000000,,1.5,15\n" + ",".join(["1"] * 13))

        self.assertEqual(upload.fund_type, "Private Equity")
        self.assertEqual(upload.management_fee_rate, 1.5)
        self.assertEqual(upload.carried_interest_rate, 15.0)
        self.assertIsNone(upload.tax_rate)

    def test_templates(self):
        templates = single_fund_upload_to_templates(parse_single_fund_upload(self.TEXT), "fund-1")

        self.assertEqual([t.year for t in templates], list(range(1, 14)))
        self.assertTrue(all(t.fund_id == "fund-1" for t in templates))
        self.assertAlmostEqual(templates[12].net_cashflow_percentage, 0.05)

    def test_wrong_column_count(self):
        """Test 12 or 14 values are rejected."""
        with self.assertRaises(UploadFormatError):
            parse_single_fund_upload("Alpha,2021,100\n" + ",".join(["1"] * 12))
        with self.assertRaises(UploadFormatError):
            parse_single_fund_upload("Alpha,2021,100\n" + ",".join(["1"] * 14))

    def test_trailing_empty_cells_ignored(self):
        upload = parse_single_fund_upload("Alpha,2021,100\n" + ",".join(["1"] * 13) + ",,")
        self.assertEqual(len(upload.yearly), 13)

    def test_quoted_fund_name(self):
        upload = parse_single_fund_upload('"Gamma, LP",2022,100\n' + ",".join(["1"] * 13))

        self.assertEqual(upload.fund_name, "Gamma, LP")
        self.assertEqual(upload.vintage, 2022)
        self.assertEqual(upload.commitment_amount, 100)

    def test_malformed(self):
        with self.assertRaises(UploadFormatError):
            parse_single_fund_upload("Alpha,2021,100")
        with self.assertRaises(UploadFormatError):
            parse_single_fund_upload("Alpha,twenty,100\n" + ",".join(["1"] * 13))
        with self.assertRaises(UploadFormatError):
            parse_single_fund_upload("Alpha,2021,lots\n" + ",".join(["1"] * 13))


class TestYearColumnUpload(unittest.TestCase):
    """Test year-column net cashflow upload matching."""

    def setUp(self):
        self.funds = [
            Fund(id="f1", name="Pinnacle Tech Fund VI", vintage=2021, commitment_amount=6_600_000,
                 fund_type="Private Equity"),
            Fund(id="f2", name="Apex Venture Partners III", vintage=2023, commitment_amount=1_600_000,
                 fund_type="Venture Capital"),
        ]

    def test_fuzzy_match(self):
        self.assertEqual(match_fund_by_name("pinnacle tech", self.funds).id, "f1")
        self.assertEqual(match_fund_by_name("APEX VENTURE PARTNERS III (USD)", self.funds).id, "f2")
        self.assertIsNone(match_fund_by_name("Unknown", self.funds))

    def test_calendar_year_columns(self):
        text = "\n".join([
            "Fund,Vintage,2021,2022",
            "Pinnacle Tech,2021,-25,-30",
            "Unknown Fund,2020,-10,5",
        ])
        with self.assertLogs("fund_dashboard.data.upload_formats", level="WARNING"):
            parsed = parse_year_column_upload(text, self.funds)

        self.assertEqual(len(parsed), 1)
        self.assertEqual(parsed[0]["fund_id"], "f1")
        self.assertEqual(parsed[0]["commitment_amount"], 6_600_000)
        self.assertEqual([cf["year"] for cf in parsed[0]["yearly_cashflows"]], [2021, 2022])
        self.assertAlmostEqual(parsed[0]["yearly_cashflows"][0]["net_cashflow_percentage"], -0.25)

    def test_year_offset_columns(self):
        """Test 'Year N' headers map to the matched fund's calendar years."""
        text = "Fund,Vintage,Commitment (M),Year 1,Year 2\nApex Venture,2023,2,-40,-20"
        parsed = parse_year_column_upload(text, self.funds)

        self.assertEqual([cf["year"] for cf in parsed[0]["yearly_cashflows"]], [2023, 2024])

    def test_trailing_comma(self):
        """Test a trailing comma does not shift values into the wrong columns."""
        funds = [Fund(id="a", name="Alpha", vintage=2020, commitment_amount=1_000_000,
                      fund_type="Private Equity")]
        parsed = parse_year_column_upload("Fund,Vintage,2020,2021\nAlpha,2020,-10,20,\n", funds)

        self.assertEqual(parsed[0]["fund_id"], "a")
        yearly = parsed[0]["yearly_cashflows"]
        self.assertEqual([cf["year"] for cf in yearly], [2020, 2021])
        self.assertAlmostEqual(yearly[0]["net_cashflow_percentage"], -0.1)
        self.assertAlmostEqual(yearly[1]["net_cashflow_percentage"], 0.2)

    def test_row_with_extra_values_skipped(self):
        """Test a row with more values than headers is logged and skipped."""
        text = "\n".join([
            "Fund,Vintage,2021,2022",
            "Apex Venture,2023,-10,5,7",
            "Pinnacle Tech,2021,-25,-30",
        ])
        with self.assertLogs("fund_dashboard.data.upload_formats", level="WARNING") as logs:
            parsed = parse_year_column_upload(text, self.funds)

        self.assertEqual([p["fund_id"] for p in parsed], ["f1"])
        self.assertTrue(any("Row 2 has 5 values for 4 columns" in line for line in logs.output))

    def test_missing_columns(self):
        with self.assertRaises(UploadFormatError):
            parse_year_column_upload("Name,2021\nPinnacle,-10", self.funds)
        with self.assertRaises(UploadFormatError):
            parse_year_column_upload("Fund,Vintage,Notes\nPinnacle,2021,x", self.funds)

    def test_nothing_matched(self):
        with self.assertRaises(UploadFormatError):
            parse_year_column_upload("Fund,Vintage,2021\nNobody,2021,-10", self.funds)


class TestGeneralFundLines(unittest.TestCase):
    """Test bulk general fund cashflow lines."""

    def test_parse(self):
        records = parse_general_fund_cashflow_lines("2020,-25,25,0,75\n\n2021,10,0,10,70", "gf-1")

        self.assertEqual([r.year for r in records], [2020, 2021])
        self.assertAlmostEqual(records[0].net_cashflow_percentage, -0.25)
        self.assertAlmostEqual(records[0].contributions_percentage, -0.25)
        self.assertAlmostEqual(records[1].distributions_percentage, 0.1)
        self.assertAlmostEqual(records[1].nav_percentage, 0.7)

    def test_short_line(self):
        with self.assertRaises(UploadFormatError):
            parse_general_fund_cashflow_lines("2020,-25,25", "gf-1")


class TestPortfolioExport(unittest.TestCase):
    """Test portfolio export and re-import."""

    def setUp(self):
        uploads = parse_multi_fund_upload(MULTI_FUND_TEXT)
        self.funds, self.cashflows = multi_fund_upload_to_records(uploads)
        self.portfolio = Portfolio(id="pf-1", name="Client A", total_size=10_000_000)
        self.positions = [
            PortfolioPosition(id="p1", portfolio_id="pf-1", fund_id=self.funds[0].id, commitment_amount=3_000_000),
            PortfolioPosition(id="p2", portfolio_id="pf-1", fund_id=self.funds[1].id, commitment_amount=2_000_000),
            PortfolioPosition(id="p3", portfolio_id="pf-2", fund_id=self.funds[1].id, commitment_amount=9_000_000),
        ]

    def test_round_trip(self):
        """Test re-imported values match within the tolerance."""
        text = export_portfolio_cashflows(self.portfolio, self.positions, self.funds, self.cashflows)
        imported = import_portfolio_cashflows(text)

        self.assertEqual(len(imported), len(self.cashflows))
        originals = {(cf.fund_id, cf.year): cf for cf in self.cashflows}
        for record in imported:
            original = originals[(record.fund_id, record.year)]
            for name in ("net_cashflow_percentage", "contributions_percentage",
                         "distributions_percentage", "nav_percentage"):
                difference = abs(getattr(record, name) - getattr(original, name)) * 100
                self.assertLessEqual(difference, ROUND_TRIP_TOLERANCE)

    def test_other_portfolio_positions_excluded(self):
        text = export_portfolio_cashflows(self.portfolio, self.positions, self.funds, self.cashflows)

        self.assertIn("3000000.000000", text)
        self.assertNotIn("9000000.000000", text)

    def test_fund_name_with_comma(self):
        funds = [GeneralFund(id="gf-x", name="Alpha, Beta LP", vintage=2020, fund_type="PE")]
        cashflows = parse_general_fund_cashflow_lines("2020,-50,-50,0,50", "gf-x")
        positions = [PortfolioPosition(id="p", portfolio_id="pf-1", fund_id="gf-x", commitment_amount=1)]

        text = export_portfolio_cashflows(self.portfolio, positions, funds, cashflows)
        imported = import_portfolio_cashflows(text)

        self.assertEqual(len(imported), 1)
        self.assertAlmostEqual(imported[0].net_cashflow_percentage, -0.5)

    def test_missing_columns(self):
        with self.assertRaises(UploadFormatError):
            import_portfolio_cashflows("Fund,Year\nAlpha,2020")


if __name__ == '__main__':
    unittest.main()
