"""
Configuration management for the Fund Portfolio Dashboard.

This module centralizes all configuration settings including the collection
store location, the acting user, upload format constants and computation
defaults.
"""

import os
from typing import Dict


# ==============================================================================
# STORE CONFIGURATION
# ==============================================================================

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///fund_dashboard.db")

# Single hardcoded user; passed explicitly into the store, never read by engines
DASHBOARD_USER_ID = os.getenv("DASHBOARD_USER_ID", "user-1")

# Named collections in the key-value store
COLLECTION_KEYS: Dict[str, str] = {
    "funds": "funds",
    "cashflows": "cashflows",
    "general_funds": "generalFunds",
    "general_fund_cashflows": "generalFundCashflows",
    "portfolios": "portfolios",
    "portfolio_positions": "portfolioPositions",
    "cashflow_templates": "cashflowTemplates",
}


# ==============================================================================
# COMPUTATION CONFIGURATION
# ==============================================================================

DEFAULT_SCENARIO_ID = os.getenv("DEFAULT_SCENARIO_ID", "neutral")

# Projections are annual and reported at year-end
PROJECTION_QUARTER = 4

# Pacing window (years before the reference year)
PACING_LOOKBACK_YEARS = int(os.getenv("PACING_LOOKBACK_YEARS", "2"))


# ==============================================================================
# UPLOAD CONFIGURATION
# ==============================================================================

MULTI_FUND_YEAR_COLUMNS = 12
MULTI_FUND_METADATA_COLUMNS = ["Fund", "Vintage", "Type", "Subtype", "Geography"]

SINGLE_FUND_YEAR_COLUMNS = 13

# Defaults applied to general funds created from the multi-fund upload
UPLOAD_DEFAULT_LIFESPAN = 10
UPLOAD_DEFAULT_MANAGEMENT_FEE_RATE = 2.0
UPLOAD_DEFAULT_CARRIED_INTEREST_RATE = 20.0

# Percent points (0.01 means 0.01%)
ROUND_TRIP_TOLERANCE = 0.01


# ==============================================================================
# API CONFIGURATION
# ==============================================================================

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))


# ==============================================================================
# LOGGING CONFIGURATION
# ==============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
