"""
Portfolio Waterfall Engine.

This module turns percentage-of-commitment cashflows of several funds into a
portfolio-level, year-by-year waterfall: contributions, distributions, net
cashflow and running cumulative net, plus peak outflow, peak inflow and the
break-even year.
"""

from typing import List, Dict, Any, Optional, Iterable, Mapping, Tuple, Union
import logging

from ..models import GeneralFundNetCashflow, WaterfallYear
from .safe_math import safe_divide, safe_float, safe_sum

logger = logging.getLogger(__name__)


CashflowIndex = Mapping[Tuple[str, int], GeneralFundNetCashflow]


# ==============================================================================
# HELPERS
# ==============================================================================

def _position_value(position: Any, name: str) -> Any:
    if isinstance(position, Mapping):
        return position.get(name)
    return getattr(position, name, None)


def index_cashflows_by_fund_year(
    cashflows: Union[Iterable[GeneralFundNetCashflow], CashflowIndex]
) -> Dict[Tuple[str, int], GeneralFundNetCashflow]:
    """
    Key percentage cashflows by (fund_id, year).

    A mapping is returned unchanged. For a list, the first record of a
    duplicated (fund_id, year) wins.
    """
    if isinstance(cashflows, Mapping):
        return dict(cashflows)

    index: Dict[Tuple[str, int], GeneralFundNetCashflow] = {}
    for cf in cashflows:
        key = (cf.fund_id, cf.year)
        if key in index:
            logger.warning(f"Duplicate cashflow for fund {cf.fund_id} year {cf.year}, keeping the first")
            continue
        index[key] = cf
    return index


def calculate_allocation_percentage(commitment_amount: float, total_size: float) -> float:
    """Allocation % = commitment / portfolio size * 100, 0 for an empty portfolio."""
    return safe_divide(commitment_amount, total_size) * 100


def accumulate_net(yearly: List[WaterfallYear]) -> float:
    """Fill cumulative_net in place, in list order. Returns the final cumulative value."""
    cumulative = 0.0
    for entry in yearly:
        cumulative += entry.net_cashflow
        entry.cumulative_net = cumulative
    return cumulative


def find_peak_outflow(yearly: List[WaterfallYear]) -> Optional[Dict[str, Any]]:
    """Year with the most negative net cashflow; first occurrence wins ties."""
    if not yearly:
        return None
    peak = yearly[0]
    for entry in yearly[1:]:
        if entry.net_cashflow < peak.net_cashflow:
            peak = entry
    return {"year": peak.year, "amount": peak.net_cashflow}


def find_peak_inflow(yearly: List[WaterfallYear]) -> Optional[Dict[str, Any]]:
    """Year with the most positive net cashflow; first occurrence wins ties."""
    if not yearly:
        return None
    peak = yearly[0]
    for entry in yearly[1:]:
        if entry.net_cashflow > peak.net_cashflow:
            peak = entry
    return {"year": peak.year, "amount": peak.net_cashflow}


def find_break_even_year(yearly: List[WaterfallYear]) -> Optional[int]:
    """First year whose cumulative net is zero or above, else None."""
    for entry in yearly:
        if entry.cumulative_net >= 0:
            return entry.year
    return None


def _empty_waterfall(total_commitment: float = 0.0) -> Dict[str, Any]:
    return {
        "yearly": [],
        "peak_outflow": None,
        "peak_inflow": None,
        "break_even_year": None,
        "total_commitment": total_commitment,
        "final_cumulative": 0.0,
    }


# ==============================================================================
# WATERFALL
# ==============================================================================

def build_portfolio_waterfall(
    positions: Iterable[Any],
    cashflows: Union[Iterable[GeneralFundNetCashflow], CashflowIndex]
) -> Dict[str, Any]:
    """
    Aggregate positions' percentage cashflows into a yearly portfolio waterfall.

    For every year that appears in any position's data, each position adds
    commitment * contributions_percentage to contributions (negative) and
    commitment * distributions_percentage to distributions (positive). A
    position with no record for a year adds 0.

    Args:
        positions: Objects or mappings with fund_id and commitment_amount
        cashflows: GeneralFundNetCashflow list, or a {(fund_id, year): record} mapping

    Returns:
        Dictionary with yearly (list of WaterfallYear, ascending), peak_outflow
        and peak_inflow ({year, amount} or None), break_even_year (or None),
        total_commitment and final_cumulative

    Example:
        >>> result = build_portfolio_waterfall(positions, general_fund_cashflows)
        >>> result["break_even_year"]
        2027
    """
    positions = list(positions)
    total_commitment = safe_sum(_position_value(p, "commitment_amount") for p in positions)

    if not positions:
        logger.warning("No positions provided for waterfall")
        return _empty_waterfall(total_commitment)

    index = index_cashflows_by_fund_year(cashflows)
    fund_ids = {_position_value(p, "fund_id") for p in positions}
    years = sorted({year for fund_id, year in index if fund_id in fund_ids})

    if not years:
        logger.warning(f"No cashflow years found for {len(positions)} positions")
        return _empty_waterfall(total_commitment)

    yearly = []
    for year in years:
        contributions = 0.0
        distributions = 0.0

        for position in positions:
            record = index.get((_position_value(position, "fund_id"), year))
            if record is None:
                continue
            commitment = safe_float(_position_value(position, "commitment_amount"))
            contributions += commitment * safe_float(record.contributions_percentage)
            distributions += commitment * safe_float(record.distributions_percentage)

        yearly.append(WaterfallYear(
            year=year,
            contributions=contributions,
            distributions=distributions,
            net_cashflow=contributions + distributions
        ))

    final_cumulative = accumulate_net(yearly)

    result = {
        "yearly": yearly,
        "peak_outflow": find_peak_outflow(yearly),
        "peak_inflow": find_peak_inflow(yearly),
        "break_even_year": find_break_even_year(yearly),
        "total_commitment": total_commitment,
        "final_cumulative": final_cumulative,
    }

    logger.debug(f"Built waterfall with {len(yearly)} years for {len(positions)} positions")
    return result


def build_net_cashflow_analysis(uploaded_funds: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Aggregate uploaded net-percentage cashflows into a yearly analysis.

    Each uploaded fund is a mapping with commitment_amount and
    yearly_cashflows, a list of {year, net_cashflow_percentage}. The net
    amount per year is commitment * net fraction; commitment for a year counts
    only funds with data in that year.

    Returns:
        Dictionary with yearly rows (year, total_net_cashflow,
        total_commitment, net_cashflow_percentage, cumulative_net_cashflow),
        peak_outflow, peak_inflow, break_even_year, total_commitment and
        final_cumulative
    """
    uploaded_funds = list(uploaded_funds)
    total_commitment = safe_sum(f.get("commitment_amount") for f in uploaded_funds)

    by_fund_year: Dict[Tuple[int, int], float] = {}
    years = set()
    for i, fund in enumerate(uploaded_funds):
        for cf in fund.get("yearly_cashflows", []):
            by_fund_year.setdefault((i, cf["year"]), safe_float(cf.get("net_cashflow_percentage")))
            years.add(cf["year"])

    if not years:
        logger.warning("No uploaded cashflows to analyse")
        return _empty_waterfall(total_commitment)

    rows = []
    yearly = []
    for year in sorted(years):
        total_net = 0.0
        year_commitment = 0.0
        for i, fund in enumerate(uploaded_funds):
            if (i, year) not in by_fund_year:
                continue
            commitment = safe_float(fund.get("commitment_amount"))
            total_net += commitment * by_fund_year[(i, year)]
            year_commitment += commitment

        rows.append({
            "year": year,
            "total_net_cashflow": total_net,
            "total_commitment": year_commitment,
            "net_cashflow_percentage": safe_divide(total_net, year_commitment),
        })
        yearly.append(WaterfallYear(year=year, contributions=min(total_net, 0.0),
                                    distributions=max(total_net, 0.0), net_cashflow=total_net))

    final_cumulative = accumulate_net(yearly)
    for row, entry in zip(rows, yearly):
        row["cumulative_net_cashflow"] = entry.cumulative_net

    return {
        "yearly": rows,
        "peak_outflow": find_peak_outflow(yearly),
        "peak_inflow": find_peak_inflow(yearly),
        "break_even_year": find_break_even_year(yearly),
        "total_commitment": total_commitment,
        "final_cumulative": final_cumulative,
    }
