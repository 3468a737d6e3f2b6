"""
Tests for the Fund Dashboard API endpoints.

Uses the FastAPI test client against a service on an in-memory store.
"""

import unittest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from fastapi.testclient import TestClient

from fund_dashboard.api_server import create_app
from fund_dashboard.data.store import CollectionStore
from fund_dashboard.data.dashboard_service import DashboardService

MULTI_FUND_TEXT = "\n".join([
    "Fund,Vintage,Type,Subtype,Geography,"
    "Year 1,Year 2,Year 3,Year 4,Year 5,Year 6,Year 7,Year 8,Year 9,Year 10,Year 11,Year 12",
    "Alpha,2020,PE,Buyout,US,-50,-50,0,0,25,50,75,0,0,0,0,0",
])


class TestApiServer(unittest.TestCase):
    """Test the HTTP surface."""

    def setUp(self):
        self.service = DashboardService(CollectionStore("sqlite://"))
        self.client = TestClient(create_app(self.service))

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "service_ready": True})

    def test_reference_data(self):
        fund_types = self.client.get("/fund-types").json()
        scenarios = self.client.get("/scenarios").json()

        self.assertIn("Private Equity", [t["fund_type"] for t in fund_types])
        self.assertEqual([s["id"] for s in scenarios], ["conservative", "neutral", "optimistic"])

    def test_unknown_ids(self):
        """Test unknown funds and portfolios return 404."""
        self.assertEqual(self.client.get("/funds/missing/metrics").status_code, 404)
        self.assertEqual(self.client.get("/funds/missing/projection").status_code, 404)
        self.assertEqual(self.client.get("/portfolios/missing/waterfall").status_code, 404)

    def test_fund_metrics_and_projection(self):
        fund = self.service.add_fund("Alpha", 2020, 1_000_000, "Private Equity")
        self.service.add_cashflow(fund.id, 2020, 4, calls=400_000, nav=400_000)

        metrics = self.client.get(f"/funds/{fund.id}/metrics").json()
        self.assertEqual(metrics["total_calls"], 400_000)
        self.assertAlmostEqual(metrics["called_percentage"], 40.0)

        projection = self.client.get(f"/funds/{fund.id}/projection", params={"scenario": "conservative"}).json()
        self.assertEqual(projection["scenario"], "conservative")
        self.assertEqual(projection["projection"][0]["year"], 2020)

    def test_multi_fund_upload_and_waterfall(self):
        response = self.client.post("/uploads/multi-fund", json={"content": MULTI_FUND_TEXT})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["funds_created"], 1)
        self.assertEqual(body["cashflows_created"], 5)

        portfolio = self.service.add_portfolio("Core", 1_000_000)
        self.service.add_position(portfolio.id, body["fund_ids"][0], 1_000_000)

        waterfall = self.client.get(f"/portfolios/{portfolio.id}/waterfall").json()
        self.assertEqual(waterfall["portfolio_name"], "Core")
        self.assertEqual(waterfall["yearly"][0]["year"], 2020)
        self.assertAlmostEqual(waterfall["yearly"][0]["contributions"], -500_000)
        self.assertEqual(waterfall["break_even_year"], 2026)

    def test_single_fund_upload(self):
        content = "Gamma Fund,2022,20000000\n" + ",".join(["-10"] * 5 + ["10"] * 8)
        response = self.client.post("/uploads/single-fund", json={"content": content})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["fund_created"])
        self.assertEqual(response.json()["templates_created"], 13)

    def test_malformed_uploads_rejected(self):
        """Test malformed uploads return 422 and store nothing."""
        multi = self.client.post("/uploads/multi-fund", json={"content": "Fund,Vintage"})
        single = self.client.post("/uploads/single-fund", json={"content": "Gamma,2022,100\n1,2,3"})

        self.assertEqual(multi.status_code, 422)
        self.assertEqual(single.status_code, 422)
        self.assertEqual(self.service.list_general_funds(), [])
        self.assertEqual(self.service.list_funds(), [])


if __name__ == '__main__':
    unittest.main()
