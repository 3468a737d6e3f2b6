"""
Projection Engine for Expected Fund Cash Flows.

This module projects yearly calls, distributions and NAV for a fund from the
historical lifecycle pattern of its fund type. A portfolio scenario scales
distributions and NAV; capital calls are contractual and are never scaled.
"""

from typing import List, Dict, Any, Optional, Union, Iterable, Mapping
import logging

from ..config import DEFAULT_SCENARIO_ID, PROJECTION_QUARTER
from ..models import FundTypeExpectation, PortfolioScenario
from .safe_math import safe_float, pattern_value

logger = logging.getLogger(__name__)


# ==============================================================================
# REFERENCE DATA
# ==============================================================================

# Percent of commitment per year of fund life
FUND_TYPE_EXPECTATIONS: List[FundTypeExpectation] = [
    FundTypeExpectation(
        fund_type="Private Equity",
        avg_lifespan=10,
        call_pattern=[15, 25, 20, 15, 10, 8, 5, 2, 0, 0],
        distribution_pattern=[0, 2, 5, 8, 15, 25, 20, 15, 8, 2],
        nav_pattern=[15, 38, 55, 65, 70, 60, 45, 30, 15, 5],
        management_fee_pattern=[2.0, 2.0, 2.0, 2.0, 2.0, 1.5, 1.5, 1.0, 1.0, 0.5],
        carried_interest_pattern=[0, 0, 0, 0, 20, 20, 20, 20, 20, 20],
        avg_multiple=2.2,
        avg_irr=15.5
    ),
    FundTypeExpectation(
        fund_type="Venture Capital",
        avg_lifespan=10,
        call_pattern=[20, 30, 25, 15, 5, 3, 2, 0, 0, 0],
        distribution_pattern=[0, 0, 2, 5, 10, 15, 25, 25, 15, 3],
        nav_pattern=[20, 45, 65, 75, 80, 75, 60, 40, 25, 10],
        management_fee_pattern=[2.5, 2.5, 2.5, 2.5, 2.0, 2.0, 1.5, 1.5, 1.0, 1.0],
        carried_interest_pattern=[0, 0, 0, 30, 30, 30, 30, 30, 30, 30],
        avg_multiple=3.1,
        avg_irr=18.2
    ),
    FundTypeExpectation(
        fund_type="Real Estate",
        avg_lifespan=8,
        call_pattern=[20, 25, 20, 15, 10, 5, 3, 2],
        distribution_pattern=[5, 8, 12, 15, 20, 20, 15, 5],
        nav_pattern=[18, 35, 45, 50, 45, 35, 20, 10],
        management_fee_pattern=[1.5, 1.5, 1.5, 1.5, 1.0, 1.0, 0.5, 0.5],
        carried_interest_pattern=[0, 0, 20, 20, 20, 20, 20, 20],
        avg_multiple=1.8,
        avg_irr=12.3
    ),
    FundTypeExpectation(
        fund_type="Infrastructure",
        avg_lifespan=12,
        call_pattern=[12, 18, 15, 12, 10, 8, 8, 6, 5, 3, 2, 1],
        distribution_pattern=[2, 4, 6, 8, 10, 12, 14, 16, 14, 10, 8, 6],
        nav_pattern=[12, 26, 35, 40, 42, 40, 38, 35, 30, 25, 18, 10],
        management_fee_pattern=[1.5, 1.5, 1.5, 1.5, 1.5, 1.0, 1.0, 1.0, 1.0, 0.5, 0.5, 0.5],
        carried_interest_pattern=[0, 0, 0, 15, 15, 15, 15, 15, 15, 15, 15, 15],
        avg_multiple=1.6,
        avg_irr=10.8
    ),
    FundTypeExpectation(
        fund_type="Credit",
        avg_lifespan=6,
        call_pattern=[25, 30, 20, 15, 8, 2],
        distribution_pattern=[8, 15, 20, 25, 20, 12],
        nav_pattern=[20, 35, 40, 35, 25, 10],
        management_fee_pattern=[1.0, 1.0, 1.0, 1.0, 0.5, 0.5],
        carried_interest_pattern=[10, 10, 10, 10, 10, 10],
        avg_multiple=1.4,
        avg_irr=9.2
    ),
    FundTypeExpectation(
        fund_type="Hedge Fund",
        avg_lifespan=3,
        call_pattern=[40, 35, 25],
        distribution_pattern=[35, 35, 30],
        nav_pattern=[40, 40, 35],
        management_fee_pattern=[2.0, 2.0, 2.0],
        carried_interest_pattern=[20, 20, 20],
        avg_multiple=1.2,
        avg_irr=8.5
    ),
]

PORTFOLIO_SCENARIOS: List[PortfolioScenario] = [
    PortfolioScenario(
        id="conservative",
        name="Conservative",
        multiplier=0.75,
        description="Lower returns, reduced risk scenario with 25% haircut on expected performance"
    ),
    PortfolioScenario(
        id="neutral",
        name="Base Case",
        multiplier=1.0,
        description="Expected returns based on historical fund type averages"
    ),
    PortfolioScenario(
        id="optimistic",
        name="Optimistic",
        multiplier=1.3,
        description="Strong performance scenario with 30% uplift on expected returns"
    ),
]

# Older exports call the optimistic scenario "positive"
SCENARIO_ALIASES = {"positive": "optimistic", "base": "neutral"}


def get_fund_type_expectation(
    fund_type: str,
    expectations: Optional[Iterable[FundTypeExpectation]] = None
) -> Optional[FundTypeExpectation]:
    """
    Look up the lifecycle pattern for a fund type.

    Args:
        fund_type: Exact fund type name, e.g. "Private Equity"
        expectations: Reference table to search (defaults to FUND_TYPE_EXPECTATIONS)

    Returns:
        The matching FundTypeExpectation, or None
    """
    table = FUND_TYPE_EXPECTATIONS if expectations is None else expectations
    for expectation in table:
        if expectation.fund_type == fund_type:
            return expectation
    return None


def get_scenario(scenario_id: Optional[str] = None) -> PortfolioScenario:
    """
    Resolve a scenario id to a PortfolioScenario.

    None or an unknown id resolves to the configured default scenario.
    """
    if scenario_id is None:
        scenario_id = DEFAULT_SCENARIO_ID

    scenario_id = SCENARIO_ALIASES.get(scenario_id, scenario_id)
    for scenario in PORTFOLIO_SCENARIOS:
        if scenario.id == scenario_id:
            return scenario

    logger.warning(f"Unknown scenario '{scenario_id}', using '{DEFAULT_SCENARIO_ID}'")
    return next(s for s in PORTFOLIO_SCENARIOS if s.id == DEFAULT_SCENARIO_ID)


def _resolve_scenario(scenario: Union[PortfolioScenario, str, None]) -> PortfolioScenario:
    if isinstance(scenario, PortfolioScenario):
        return scenario
    return get_scenario(scenario)


def _fund_value(fund: Any, name: str, default: Any = None) -> Any:
    if isinstance(fund, Mapping):
        return fund.get(name, default)
    return getattr(fund, name, default)


# ==============================================================================
# PROJECTIONS
# ==============================================================================

def project_cash_flows(
    fund: Any,
    scenario: Union[PortfolioScenario, str, None] = None,
    expectations: Optional[Iterable[FundTypeExpectation]] = None,
    include_fees: bool = False
) -> List[Dict[str, Any]]:
    """
    Project yearly cash flows for a fund from its fund-type pattern.

    For each year of life i:
    - calls = commitment * call_pattern[i] / 100 (not scaled by scenario)
    - distributions = commitment * distribution_pattern[i] / 100 * multiplier
    - nav = commitment * nav_pattern[i] / 100 * multiplier

    Args:
        fund: Object or mapping with commitment_amount, fund_type and vintage
        scenario: PortfolioScenario, scenario id, or None for the default
        expectations: Reference table override (defaults to FUND_TYPE_EXPECTATIONS)
        include_fees: Also project management fees (% of NAV) and carried
            interest (% of distributions)

    Returns:
        List of avg_lifespan year-end dictionaries with is_projected True, or
        an empty list when the fund type is unknown

    Example:
        >>> rows = project_cash_flows(fund, get_scenario("optimistic"))
        >>> rows[0]
        {'year': 2020, 'quarter': 4, 'calls': 15000000.0, ...}
    """
    fund_type = _fund_value(fund, "fund_type")
    expectation = get_fund_type_expectation(fund_type, expectations)
    if expectation is None:
        logger.warning(f"No fund type expectation for '{fund_type}', projection is empty")
        return []

    resolved = _resolve_scenario(scenario)
    multiplier = safe_float(resolved.multiplier)
    commitment = safe_float(_fund_value(fund, "commitment_amount"))
    vintage = int(_fund_value(fund, "vintage", 0))

    projections = []
    for i in range(expectation.avg_lifespan):
        calls = safe_float(commitment * pattern_value(expectation.call_pattern, i) / 100)
        distributions = safe_float(
            commitment * pattern_value(expectation.distribution_pattern, i) / 100 * multiplier
        )
        nav = safe_float(commitment * pattern_value(expectation.nav_pattern, i) / 100 * multiplier)

        row = {
            "year": vintage + i,
            "quarter": PROJECTION_QUARTER,
            "calls": calls,
            "distributions": distributions,
            "nav": nav,
            "is_projected": True,
        }

        if include_fees:
            row["management_fees"] = safe_float(
                nav * pattern_value(expectation.management_fee_pattern, i) / 100
            )
            row["carried_interest"] = safe_float(
                distributions * pattern_value(expectation.carried_interest_pattern, i) / 100
            )

        projections.append(row)

    logger.debug(
        f"Projected {len(projections)} years for {fund_type} fund "
        f"(scenario={resolved.id}, commitment={commitment:,.0f})"
    )
    return projections


def project_portfolio_cash_flows(
    funds: List[Any],
    scenario: Union[PortfolioScenario, str, None] = None,
    expectations: Optional[Iterable[FundTypeExpectation]] = None
) -> Dict[str, Any]:
    """
    Project cash flows for a set of funds and total them by year.

    Args:
        funds: Funds with commitment_amount, fund_type and vintage
        scenario: Scenario applied to every fund
        expectations: Reference table override

    Returns:
        Dictionary with "by_year" (sorted yearly totals) and "by_fund"
        (each fund's projection)
    """
    totals: Dict[int, Dict[str, float]] = {}
    by_fund = []

    for fund in funds:
        projection = project_cash_flows(fund, scenario, expectations)

        for row in projection:
            year_totals = totals.setdefault(
                row["year"], {"calls": 0.0, "distributions": 0.0, "nav": 0.0}
            )
            year_totals["calls"] += row["calls"]
            year_totals["distributions"] += row["distributions"]
            year_totals["nav"] += row["nav"]

        by_fund.append({
            "fund_id": _fund_value(fund, "id"),
            "fund_name": _fund_value(fund, "name"),
            "projection": projection
        })

    by_year = []
    for year in sorted(totals):
        row = {"year": year}
        row.update(totals[year])
        row["net_cashflow"] = row["distributions"] - row["calls"]
        by_year.append(row)

    logger.info(f"Projected portfolio cash flows for {len(funds)} funds over {len(by_year)} years")
    return {"by_year": by_year, "by_fund": by_fund}
