"""
Cash Flow Processing Engine.

This module provides aggregation, filtering, pacing and cumulative-series
calculations over quarterly fund cashflow records, and merges actual records
with fund-type projections for combined yearly views.
"""

from typing import List, Dict, Any, Optional, Iterable
from enum import Enum
import logging

from ..models import Fund, CashflowRecord, PortfolioScenario
from .safe_math import safe_divide, safe_float, safe_sum
from .fund_metrics_engine import calculate_multiple
from .projection_engine import project_cash_flows

logger = logging.getLogger(__name__)


# ==============================================================================
# ENUMS
# ==============================================================================

class AggregationPeriod(Enum):
    """Time period aggregation options."""
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class CashflowView(Enum):
    """Which numbers a yearly table shows."""
    ACTUAL = "actual"
    PROJECTED = "projected"
    COMBINED = "combined"


# ==============================================================================
# FILTERING
# ==============================================================================

def filter_by_fund(
    cash_flows: Iterable[CashflowRecord],
    fund_ids: List[str]
) -> List[CashflowRecord]:
    """
    Filter cashflow records by fund IDs.

    Args:
        cash_flows: Cashflow records
        fund_ids: Fund IDs to include

    Returns:
        Filtered list of records
    """
    filtered = [cf for cf in cash_flows if cf.fund_id in fund_ids]
    logger.debug(f"Filtered to {len(filtered)} cash flows for {len(fund_ids)} funds")
    return filtered


def filter_by_year_range(
    cash_flows: Iterable[CashflowRecord],
    start_year: Optional[int] = None,
    end_year: Optional[int] = None
) -> List[CashflowRecord]:
    """Filter records to an inclusive year range; None leaves that side open."""
    filtered = list(cash_flows)

    if start_year is not None:
        filtered = [cf for cf in filtered if cf.year >= start_year]

    if end_year is not None:
        filtered = [cf for cf in filtered if cf.year <= end_year]

    return filtered


def sort_by_period(cash_flows: Iterable[CashflowRecord]) -> List[CashflowRecord]:
    """Sort records by (year, quarter) ascending."""
    return sorted(cash_flows, key=lambda cf: cf.period_key)


# ==============================================================================
# AGGREGATION
# ==============================================================================

def aggregate_by_period(
    cash_flows: Iterable[CashflowRecord],
    period: AggregationPeriod = AggregationPeriod.YEARLY,
    fund_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Aggregate cashflow records by year or quarter.

    Yearly buckets sum calls and distributions and keep the highest NAV seen in
    the year. Quarterly buckets are labelled "2021Q3".

    Args:
        cash_flows: Cashflow records
        period: Aggregation period
        fund_id: Restrict to one fund; None aggregates all funds

    Returns:
        List of period dictionaries sorted chronologically

    Example:
        >>> rows = aggregate_by_period(records, AggregationPeriod.YEARLY)
        >>> # [{'period': '2020', 'calls': 5e6, 'distributions': 0, 'nav': 5e6, 'net_cashflow': -5e6}, ...]
    """
    records = list(cash_flows)
    if fund_id is not None:
        records = [cf for cf in records if cf.fund_id == fund_id]

    buckets: Dict[tuple, Dict[str, Any]] = {}

    for cf in records:
        if period == AggregationPeriod.YEARLY:
            key = (cf.year, 0)
            label = str(cf.year)
        else:
            key = cf.period_key
            label = f"{cf.year}Q{cf.quarter}"

        if key not in buckets:
            buckets[key] = {"period": label, "calls": 0.0, "distributions": 0.0, "nav": 0.0}

        bucket = buckets[key]
        bucket["calls"] += safe_float(cf.calls)
        bucket["distributions"] += safe_float(cf.distributions)
        if period == AggregationPeriod.YEARLY:
            bucket["nav"] = max(bucket["nav"], safe_float(cf.nav))
        else:
            bucket["nav"] += safe_float(cf.nav)

    aggregated = []
    for key in sorted(buckets):
        bucket = buckets[key]
        bucket["net_cashflow"] = bucket["distributions"] - bucket["calls"]
        aggregated.append(bucket)

    logger.debug(f"Aggregated {len(records)} cash flows into {len(aggregated)} periods")
    return aggregated


def calculate_cumulative_performance(
    fund: Fund,
    cash_flows: Iterable[CashflowRecord]
) -> List[Dict[str, Any]]:
    """
    Build a running performance series for one fund.

    Each point carries cumulative calls, cumulative distributions, the period
    NAV, cumulative net cashflow and the multiple as of that period.

    Args:
        fund: The fund
        cash_flows: All cashflow records; filtered to the fund internally

    Returns:
        List of period dictionaries in (year, quarter) order
    """
    fund_records = sort_by_period(cf for cf in cash_flows if cf.fund_id == fund.id)

    series = []
    cumulative_calls = 0.0
    cumulative_distributions = 0.0

    for cf in fund_records:
        cumulative_calls += safe_float(cf.calls)
        cumulative_distributions += safe_float(cf.distributions)
        nav = safe_float(cf.nav)

        series.append({
            "period": f"{cf.year}Q{cf.quarter}",
            "year": cf.year,
            "quarter": cf.quarter,
            "nav": nav,
            "cumulative_calls": cumulative_calls,
            "cumulative_distributions": cumulative_distributions,
            "net_cashflow": cumulative_distributions - cumulative_calls,
            "multiple": calculate_multiple(cumulative_distributions, nav, cumulative_calls),
        })

    return series


# ==============================================================================
# PACING
# ==============================================================================

def calculate_pacing_metrics(
    cash_flows: Iterable[CashflowRecord],
    reference_year: int,
    lookback_years: int = 2
) -> Dict[str, Any]:
    """
    Calculate recent call and distribution pacing.

    Records from reference_year - lookback_years onwards count as recent.
    Averages are per record, which is per quarter for quarterly reporting.

    Args:
        cash_flows: Cashflow records
        reference_year: Usually the current calendar year
        lookback_years: Number of prior years included

    Returns:
        Dictionary with recent totals and per-quarter averages
    """
    recent = filter_by_year_range(cash_flows, start_year=reference_year - lookback_years)

    total_recent_calls = safe_sum(cf.calls for cf in recent)
    total_recent_distributions = safe_sum(cf.distributions for cf in recent)
    record_count = len(recent)

    return {
        "reference_year": reference_year,
        "total_recent_calls": total_recent_calls,
        "total_recent_distributions": total_recent_distributions,
        "net_recent_cashflow": total_recent_distributions - total_recent_calls,
        "avg_quarterly_calls": safe_divide(total_recent_calls, record_count),
        "avg_quarterly_distributions": safe_divide(total_recent_distributions, record_count),
        "record_count": record_count,
    }


# ==============================================================================
# ACTUAL + PROJECTED
# ==============================================================================

def merge_actual_and_projected(
    fund: Fund,
    cash_flows: Iterable[CashflowRecord],
    scenario: Optional[PortfolioScenario] = None
) -> List[Dict[str, Any]]:
    """
    Combine a fund's actual records with projections for uncovered years.

    Actual records are kept as-is (is_projected False). Projected year-end
    entries are added only for years with no actual record.

    Returns:
        List of period dictionaries sorted by (year, quarter)
    """
    actual = [
        {
            "year": cf.year,
            "quarter": cf.quarter,
            "calls": safe_float(cf.calls),
            "distributions": safe_float(cf.distributions),
            "nav": safe_float(cf.nav),
            "is_projected": False,
        }
        for cf in cash_flows if cf.fund_id == fund.id
    ]
    actual_years = {row["year"] for row in actual}

    projected = [
        row for row in project_cash_flows(fund, scenario)
        if row["year"] not in actual_years
    ]

    merged = sorted(actual + projected, key=lambda row: (row["year"], row["quarter"]))
    logger.debug(f"Merged {len(actual)} actual and {len(projected)} projected periods for fund {fund.id}")
    return merged


def _actual_year_totals(records: List[CashflowRecord]) -> Dict[str, float]:
    latest = max(records, key=lambda cf: (cf.quarter, safe_float(cf.nav)))
    return {
        "calls": safe_sum(cf.calls for cf in records),
        "distributions": safe_sum(cf.distributions for cf in records),
        "nav": safe_float(latest.nav),
        "management_fees": safe_sum(cf.management_fees for cf in records),
        "carried_interest": safe_sum(cf.carried_interest for cf in records),
        "taxes": safe_sum(cf.taxes for cf in records),
    }


def build_cashflow_table(
    funds: List[Fund],
    cash_flows: Iterable[CashflowRecord],
    scenario: Optional[PortfolioScenario] = None,
    view: CashflowView = CashflowView.COMBINED
) -> List[Dict[str, Any]]:
    """
    Build yearly totals across funds from actual and/or projected cashflows.

    The year axis is the union of actual record years and projected years of
    the given funds. In the combined view a fund-year uses its actual records
    when any exist and falls back to the projection otherwise. Fee, carry and
    tax totals come from actual records only.

    Args:
        funds: Funds to include
        cash_flows: All cashflow records
        scenario: Projection scenario (default scenario when None)
        view: ACTUAL, PROJECTED or COMBINED

    Returns:
        One dictionary per year with total_calls, total_distributions,
        total_nav, total_fees, total_carry, total_tax and net_cashflow
    """
    fund_ids = {f.id for f in funds}
    records = [cf for cf in cash_flows if cf.fund_id in fund_ids]

    actual_by_fund_year: Dict[tuple, List[CashflowRecord]] = {}
    for cf in records:
        actual_by_fund_year.setdefault((cf.fund_id, cf.year), []).append(cf)

    projected_by_fund_year: Dict[tuple, Dict[str, Any]] = {}
    for fund in funds:
        for row in project_cash_flows(fund, scenario):
            projected_by_fund_year[(fund.id, row["year"])] = row

    years = sorted({year for _, year in actual_by_fund_year} | {year for _, year in projected_by_fund_year})

    table = []
    for year in years:
        totals = {
            "year": year,
            "total_calls": 0.0,
            "total_distributions": 0.0,
            "total_nav": 0.0,
            "total_fees": 0.0,
            "total_carry": 0.0,
            "total_tax": 0.0,
        }

        for fund in funds:
            actual_records = actual_by_fund_year.get((fund.id, year))
            projected = projected_by_fund_year.get((fund.id, year))

            source = None
            if view == CashflowView.ACTUAL and actual_records:
                source = _actual_year_totals(actual_records)
            elif view == CashflowView.PROJECTED and projected:
                source = projected
            elif view == CashflowView.COMBINED:
                if actual_records:
                    source = _actual_year_totals(actual_records)
                elif projected:
                    source = projected

            if source is None:
                continue

            totals["total_calls"] += source["calls"]
            totals["total_distributions"] += source["distributions"]
            totals["total_nav"] += source["nav"]
            totals["total_fees"] += source.get("management_fees", 0.0)
            totals["total_carry"] += source.get("carried_interest", 0.0)
            totals["total_tax"] += source.get("taxes", 0.0)

        totals["net_cashflow"] = totals["total_distributions"] - totals["total_calls"]
        table.append(totals)

    logger.debug(f"Built {view.value} cashflow table with {len(table)} years for {len(funds)} funds")
    return table
