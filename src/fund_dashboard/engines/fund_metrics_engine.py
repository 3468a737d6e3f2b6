"""
Fund Metrics Computation Engine.

This module derives per-fund performance figures from periodic cashflow
records: total calls, total distributions, latest NAV, net cashflow, the
total-value-to-paid-in multiple and the called percentage of commitment.

All calculations are deterministic, order-independent and never raise on
empty or zero inputs. No IRR is computed; multiples are simple ratios.
"""

from typing import List, Dict, Any, Optional, Iterable
import logging

from ..models import Fund, CashflowRecord
from .safe_math import safe_divide, safe_float, safe_sum

logger = logging.getLogger(__name__)


# ==============================================================================
# BASIC METRICS
# ==============================================================================

def calculate_multiple(
    total_distributions: float,
    current_nav: float,
    total_calls: float
) -> float:
    """
    Calculate the total-value-to-paid-in multiple.

    Multiple = (Distributions + Current NAV) / Total Calls

    Args:
        total_distributions: Sum of distributions paid to investors
        current_nav: Latest reported NAV
        total_calls: Sum of capital called

    Returns:
        The multiple, or 0 when nothing has been called

    Example:
        >>> calculate_multiple(50, 80, 100)
        1.3
    """
    if safe_float(total_calls) <= 0:
        return 0.0
    return safe_divide(safe_float(total_distributions) + safe_float(current_nav), total_calls)


def calculate_called_percent(total_calls: float, commitment: float) -> float:
    """
    Calculate the percentage of committed capital that has been called.

    Called % = (Total Calls / Commitment) * 100

    Returns:
        Percentage called, or 0 when the commitment is zero
    """
    if safe_float(commitment) == 0:
        logger.warning("Commitment is zero, called percentage reported as 0")
        return 0.0
    return safe_divide(total_calls, commitment) * 100


def filter_records_for_fund(
    cashflow_records: Iterable[CashflowRecord],
    fund_id: str
) -> List[CashflowRecord]:
    """Return the records belonging to one fund."""
    return [cf for cf in cashflow_records if cf.fund_id == fund_id]


def latest_cashflow_record(
    cashflow_records: Iterable[CashflowRecord]
) -> Optional[CashflowRecord]:
    """
    Find the record with the greatest (year, quarter).

    Duplicate periods resolve to the larger NAV so the answer does not depend
    on input order.
    """
    records = list(cashflow_records)
    if not records:
        return None
    return max(records, key=lambda cf: cf.period_key + (safe_float(cf.nav),))


# ==============================================================================
# FUND METRICS
# ==============================================================================

def compute_fund_metrics(
    fund: Fund,
    cashflow_records: Iterable[CashflowRecord]
) -> Dict[str, float]:
    """
    Calculate all metrics for a fund from the system-wide cashflow list.

    Args:
        fund: The fund to evaluate
        cashflow_records: All cashflow records; filtered to the fund internally

    Returns:
        Dictionary with total_calls, total_distributions, current_nav,
        net_cashflow, multiple and called_percentage. A fund without records
        gets all zeros.

    Example:
        >>> metrics = compute_fund_metrics(fund, records)
        >>> print(f"Multiple: {metrics['multiple']:.2f}x")
    """
    fund_records = filter_records_for_fund(cashflow_records, fund.id)

    total_calls = safe_sum(cf.calls for cf in fund_records)
    total_distributions = safe_sum(cf.distributions for cf in fund_records)

    latest = latest_cashflow_record(fund_records)
    current_nav = safe_float(latest.nav) if latest else 0.0

    metrics = {
        "total_calls": total_calls,
        "total_distributions": total_distributions,
        "current_nav": current_nav,
        "net_cashflow": total_distributions - total_calls,
        "multiple": calculate_multiple(total_distributions, current_nav, total_calls),
        "called_percentage": calculate_called_percent(total_calls, fund.commitment_amount),
    }

    logger.debug(f"Calculated metrics for fund {fund.id} from {len(fund_records)} records")
    return metrics


def calculate_position_metrics(
    position_commitment: float,
    position_nav: float,
    fund: Fund,
    cashflow_records: Iterable[CashflowRecord]
) -> Optional[Dict[str, float]]:
    """
    Scale a fund's history to a client position.

    Calls and distributions are scaled by position commitment / fund
    commitment; NAV is the position's own reported NAV.

    Returns:
        Dictionary of scaled metrics, or None when the fund has no history
    """
    fund_records = filter_records_for_fund(cashflow_records, fund.id)
    if not fund_records:
        logger.debug(f"No cashflow history for fund {fund.id}, no position metrics")
        return None

    scaling_factor = safe_divide(position_commitment, fund.commitment_amount)
    total_calls = safe_sum(cf.calls for cf in fund_records) * scaling_factor
    total_distributions = safe_sum(cf.distributions for cf in fund_records) * scaling_factor
    current_nav = safe_float(position_nav)

    return {
        "scaling_factor": scaling_factor,
        "total_calls": total_calls,
        "total_distributions": total_distributions,
        "current_nav": current_nav,
        "net_cashflow": total_distributions - total_calls,
        "multiple": calculate_multiple(total_distributions, current_nav, total_calls),
    }


# ==============================================================================
# MULTI-FUND VIEWS
# ==============================================================================

def calculate_vintage_analysis(
    funds: List[Fund],
    cashflow_records: List[CashflowRecord]
) -> List[Dict[str, Any]]:
    """
    Build one metrics row per fund, ordered by vintage.

    Returns:
        List of dictionaries with fund metadata and compute_fund_metrics output
    """
    rows = []
    for fund in funds:
        metrics = compute_fund_metrics(fund, cashflow_records)
        row = {
            "fund_id": fund.id,
            "fund_name": fund.name,
            "fund_type": fund.fund_type,
            "vintage": fund.vintage,
            "commitment": fund.commitment_amount,
        }
        row.update(metrics)
        rows.append(row)

    # sorted() is stable, so funds sharing a vintage keep their input order
    return sorted(rows, key=lambda r: r["vintage"])


def calculate_overall_metrics(
    funds: List[Fund],
    cashflow_records: List[CashflowRecord]
) -> Dict[str, Any]:
    """
    Aggregate commitments, calls and latest NAV across all funds.

    Returns:
        Dictionary with total_commitments, total_calls, uncalled_commitments,
        total_funds, vintage_range and total_nav
    """
    if not funds:
        logger.warning("No funds provided for overall metrics")

    total_commitments = safe_sum(f.commitment_amount for f in funds)
    total_calls = 0.0
    total_nav = 0.0

    for fund in funds:
        metrics = compute_fund_metrics(fund, cashflow_records)
        total_calls += metrics["total_calls"]
        total_nav += metrics["current_nav"]

    vintages = [f.vintage for f in funds]
    vintage_range = {
        "min": min(vintages) if vintages else 0,
        "max": max(vintages) if vintages else 0,
    }

    overall = {
        "total_commitments": total_commitments,
        "total_calls": total_calls,
        "uncalled_commitments": total_commitments - total_calls,
        "total_funds": len(funds),
        "vintage_range": vintage_range,
        "total_nav": total_nav,
    }

    logger.debug(f"Aggregated overall metrics for {len(funds)} funds")
    return overall
