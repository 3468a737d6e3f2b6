"""
Unit tests for Fund Metrics Engine.

Tests multiple, called percentage, per-fund metrics and multi-fund views.
"""

import unittest
import random
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from fund_dashboard.models import Fund, CashflowRecord
from fund_dashboard.engines.fund_metrics_engine import (
    calculate_multiple,
    calculate_called_percent,
    latest_cashflow_record,
    compute_fund_metrics,
    calculate_position_metrics,
    calculate_vintage_analysis,
    calculate_overall_metrics
)


def make_fund(fund_id="fund-1", vintage=2020, commitment=100.0, fund_type="Private Equity"):
    return Fund(id=fund_id, name=f"Fund {fund_id}", vintage=vintage,
                commitment_amount=commitment, fund_type=fund_type)


class TestBasicMetrics(unittest.TestCase):
    """Test individual metric calculations."""

    def test_multiple(self):
        """Test the multiple formula."""
        self.assertAlmostEqual(calculate_multiple(50, 80, 100), 1.3)

    def test_multiple_zero_calls(self):
        """Test that no calls gives a zero multiple."""
        self.assertEqual(calculate_multiple(50, 80, 0), 0.0)
        self.assertEqual(calculate_multiple(50, 80, -10), 0.0)

    def test_called_percent(self):
        """Test called percentage."""
        self.assertAlmostEqual(calculate_called_percent(25, 100), 25.0)

    def test_called_percent_zero_commitment(self):
        """Test called percentage with zero commitment."""
        self.assertEqual(calculate_called_percent(25, 0), 0.0)

    def test_latest_record_ties_resolve_to_larger_nav(self):
        """Test latest record selection does not depend on order."""
        a = CashflowRecord(id="a", fund_id="fund-1", year=2022, quarter=4, nav=10)
        b = CashflowRecord(id="b", fund_id="fund-1", year=2022, quarter=4, nav=20)
        c = CashflowRecord(id="c", fund_id="fund-1", year=2021, quarter=4, nav=99)

        self.assertEqual(latest_cashflow_record([a, b, c]).id, "b")
        self.assertEqual(latest_cashflow_record([c, b, a]).id, "b")
        self.assertIsNone(latest_cashflow_record([]))


class TestFundMetrics(unittest.TestCase):
    """Test compute_fund_metrics."""

    def setUp(self):
        self.fund = make_fund()
        self.records = [
            CashflowRecord(id="cf-1", fund_id="fund-1", year=2020, quarter=1, calls=60, distributions=0, nav=55),
            CashflowRecord(id="cf-2", fund_id="fund-1", year=2021, quarter=2, calls=40, distributions=20, nav=70),
            CashflowRecord(id="cf-3", fund_id="fund-1", year=2022, quarter=3, calls=0, distributions=30, nav=80),
            CashflowRecord(id="cf-x", fund_id="fund-2", year=2023, quarter=1, calls=500, distributions=0, nav=500),
        ]

    def test_metrics(self):
        """Test metrics for a fund with history."""
        metrics = compute_fund_metrics(self.fund, self.records)

        self.assertAlmostEqual(metrics["total_calls"], 100)
        self.assertAlmostEqual(metrics["total_distributions"], 50)
        self.assertAlmostEqual(metrics["current_nav"], 80)
        self.assertAlmostEqual(metrics["net_cashflow"], -50)
        self.assertAlmostEqual(metrics["multiple"], 1.3)
        self.assertAlmostEqual(metrics["called_percentage"], 100.0)

    def test_no_records(self):
        """Test a fund without records gets all zeros."""
        metrics = compute_fund_metrics(make_fund("fund-9"), self.records)

        for key in ("total_calls", "total_distributions", "current_nav",
                    "net_cashflow", "multiple", "called_percentage"):
            self.assertEqual(metrics[key], 0.0)

    def test_order_independent(self):
        """Test that record order does not change the result."""
        expected = compute_fund_metrics(self.fund, self.records)

        shuffled = list(self.records)
        random.Random(7).shuffle(shuffled)
        self.assertEqual(compute_fund_metrics(self.fund, shuffled), expected)
        self.assertEqual(compute_fund_metrics(self.fund, list(reversed(self.records))), expected)

    def test_missing_values_count_as_zero(self):
        """Test NaN and None values never produce NaN metrics."""
        records = [
            CashflowRecord(id="a", fund_id="fund-1", year=2020, quarter=1,
                           calls=float("nan"), distributions=None, nav=10),
        ]
        metrics = compute_fund_metrics(self.fund, records)

        self.assertEqual(metrics["total_calls"], 0.0)
        self.assertEqual(metrics["multiple"], 0.0)
        self.assertEqual(metrics["current_nav"], 10.0)


class TestPositionMetrics(unittest.TestCase):
    """Test client position scaling."""

    def test_scaled_position(self):
        """Test calls and distributions scale by commitment share."""
        fund = make_fund(commitment=1000)
        records = [
            CashflowRecord(id="a", fund_id="fund-1", year=2020, quarter=1, calls=400, distributions=100, nav=350),
        ]
        metrics = calculate_position_metrics(100, 40, fund, records)

        self.assertAlmostEqual(metrics["scaling_factor"], 0.1)
        self.assertAlmostEqual(metrics["total_calls"], 40)
        self.assertAlmostEqual(metrics["total_distributions"], 10)
        self.assertAlmostEqual(metrics["multiple"], 50 / 40)

    def test_no_history(self):
        """Test a fund without records gives no position metrics."""
        self.assertIsNone(calculate_position_metrics(100, 40, make_fund(), []))


class TestMultiFundViews(unittest.TestCase):
    """Test vintage analysis and overall metrics."""

    def setUp(self):
        self.funds = [
            make_fund("fund-a", vintage=2021, commitment=200),
            make_fund("fund-b", vintage=2018, commitment=100),
        ]
        self.records = [
            CashflowRecord(id="1", fund_id="fund-a", year=2021, quarter=4, calls=50, nav=45),
            CashflowRecord(id="2", fund_id="fund-b", year=2019, quarter=4, calls=80, distributions=40, nav=70),
        ]

    def test_vintage_analysis_sorted(self):
        """Test rows come back ordered by vintage."""
        rows = calculate_vintage_analysis(self.funds, self.records)

        self.assertEqual([r["fund_id"] for r in rows], ["fund-b", "fund-a"])
        self.assertAlmostEqual(rows[0]["multiple"], 110 / 80)

    def test_overall_metrics(self):
        """Test totals across funds."""
        overall = calculate_overall_metrics(self.funds, self.records)

        self.assertEqual(overall["total_commitments"], 300)
        self.assertEqual(overall["total_calls"], 130)
        self.assertEqual(overall["uncalled_commitments"], 170)
        self.assertEqual(overall["total_funds"], 2)
        self.assertEqual(overall["vintage_range"], {"min": 2018, "max": 2021})
        self.assertEqual(overall["total_nav"], 115)

    def test_overall_metrics_empty(self):
        """Test empty input."""
        overall = calculate_overall_metrics([], [])

        self.assertEqual(overall["total_funds"], 0)
        self.assertEqual(overall["vintage_range"], {"min": 0, "max": 0})


if __name__ == '__main__':
    unittest.main()
