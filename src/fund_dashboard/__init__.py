"""
Fund Portfolio Dashboard.

Cashflow metrics, fund-type projections and portfolio waterfalls for
committed fund investments.
"""

__version__ = "0.1.0"
