"""
Visualization Engine for Fund Portfolio Analysis.

This module turns engine outputs into chart-ready dictionaries for:
- Portfolio cashflow waterfall (contributions, distributions, cumulative net)
- Fund performance over time (cumulative calls, distributions, NAV, multiple)
- Vintage tables
- Projected vs actual yearly cashflows

Values stay in raw currency units; the format_* helpers are for labels only.
"""

from typing import List, Dict, Any, Iterable
import logging

from ..models import WaterfallYear

logger = logging.getLogger(__name__)


# ==============================================================================
# CHART DATA PREPARATION
# ==============================================================================

def prepare_waterfall_chart_data(waterfall: Dict[str, Any]) -> Dict[str, Any]:
    """
    Prepare data for the portfolio waterfall chart.

    Args:
        waterfall: Output of build_portfolio_waterfall

    Returns:
        Dictionary with bar series for contributions and distributions, a
        line series for cumulative net and annotations for the peaks and the
        break-even year

    Example:
        >>> chart = prepare_waterfall_chart_data(build_portfolio_waterfall(positions, cashflows))
        >>> chart["x_axis"]["values"]
        ['2020', '2021', '2022']
    """
    yearly: List[WaterfallYear] = waterfall.get("yearly", [])
    periods = [str(entry.year) for entry in yearly]

    chart_data = {
        "chart_type": "waterfall",
        "x_axis": {
            "label": "Year",
            "values": periods
        },
        "y_axis": {
            "label": "Cash Flow",
            "unit": "currency"
        },
        "series": [
            {
                "name": "Contributions",
                "type": "bar",
                "data": [entry.contributions for entry in yearly],
                "color": "#d62728"
            },
            {
                "name": "Distributions",
                "type": "bar",
                "data": [entry.distributions for entry in yearly],
                "color": "#2ca02c"
            },
            {
                "name": "Cumulative Net Cash Flow",
                "type": "line",
                "data": [entry.cumulative_net for entry in yearly],
                "color": "#1f77b4"
            }
        ],
        "annotations": []
    }

    peak_outflow = waterfall.get("peak_outflow")
    if peak_outflow:
        chart_data["annotations"].append({
            "type": "point",
            "x": str(peak_outflow["year"]),
            "y": peak_outflow["amount"],
            "label": f"Peak outflow: {format_currency(peak_outflow['amount'], 1)}"
        })

    peak_inflow = waterfall.get("peak_inflow")
    if peak_inflow:
        chart_data["annotations"].append({
            "type": "point",
            "x": str(peak_inflow["year"]),
            "y": peak_inflow["amount"],
            "label": f"Peak inflow: {format_currency(peak_inflow['amount'], 1)}"
        })

    break_even_year = waterfall.get("break_even_year")
    if break_even_year is not None:
        chart_data["annotations"].append({
            "type": "vertical_line",
            "x": str(break_even_year),
            "label": f"Break-even: {break_even_year}",
            "color": "#7f7f7f",
            "line_style": "dashed"
        })

    logger.debug(f"Prepared waterfall chart with {len(periods)} years")
    return chart_data


def prepare_fund_performance_data(performance: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Prepare data for a fund's performance-over-time chart.

    Args:
        performance: Output of calculate_cumulative_performance

    Returns:
        Dictionary with cumulative calls, distributions and NAV series plus a
        multiple series on a secondary axis
    """
    periods = [point["period"] for point in performance]
    multiples = [point["multiple"] for point in performance]

    chart_data = {
        "chart_type": "fund_performance",
        "x_axis": {
            "label": "Period",
            "values": periods
        },
        "y_axis": {
            "label": "Amount",
            "unit": "currency"
        },
        "series": [
            {
                "name": "Cumulative Calls",
                "type": "line",
                "data": [point["cumulative_calls"] for point in performance],
                "color": "#d62728"
            },
            {
                "name": "Cumulative Distributions",
                "type": "line",
                "data": [point["cumulative_distributions"] for point in performance],
                "color": "#2ca02c"
            },
            {
                "name": "NAV",
                "type": "line",
                "data": [point["nav"] for point in performance],
                "color": "#1f77b4"
            },
            {
                "name": "Multiple",
                "type": "line",
                "data": multiples,
                "color": "#9467bd",
                "line_style": "dotted",
                "axis": "secondary"
            }
        ],
        "annotations": []
    }

    if multiples:
        chart_data["annotations"].append({
            "type": "point",
            "x": periods[-1],
            "y": multiples[-1],
            "label": f"Current: {format_multiple(multiples[-1])}"
        })

    logger.debug(f"Prepared fund performance data with {len(periods)} periods")
    return chart_data


def prepare_cashflow_table_chart_data(table: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Prepare a yearly calls / distributions / NAV chart from build_cashflow_table rows.
    """
    chart_data = {
        "chart_type": "cashflow_table",
        "x_axis": {
            "label": "Year",
            "values": [str(row["year"]) for row in table]
        },
        "y_axis": {
            "label": "Amount",
            "unit": "currency"
        },
        "series": [
            {
                "name": "Calls",
                "type": "bar",
                "data": [-row["total_calls"] for row in table],
                "color": "#d62728"
            },
            {
                "name": "Distributions",
                "type": "bar",
                "data": [row["total_distributions"] for row in table],
                "color": "#2ca02c"
            },
            {
                "name": "NAV",
                "type": "line",
                "data": [row["total_nav"] for row in table],
                "color": "#1f77b4"
            }
        ]
    }
    return chart_data


def prepare_vintage_table(vintage_rows: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Format calculate_vintage_analysis rows for display.

    Returns:
        List of dictionaries of display strings, in the input order
    """
    table = []
    for row in vintage_rows:
        table.append({
            "Fund": row["fund_name"],
            "Type": row["fund_type"],
            "Vintage": str(row["vintage"]),
            "Commitment": format_currency(row["commitment"], 1),
            "Called": format_currency(row["total_calls"], 1),
            "Distributed": format_currency(row["total_distributions"], 1),
            "NAV": format_currency(row["current_nav"], 1),
            "Called %": format_percentage(row["called_percentage"]),
            "Multiple": format_multiple(row["multiple"]),
        })
    return table


# ==============================================================================
# CHART FORMATTING UTILITIES
# ==============================================================================

def format_currency(value: float, decimals: int = 0) -> str:
    """Format value as currency."""
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    if magnitude >= 1_000_000_000:
        return f"{sign}${magnitude/1_000_000_000:.{decimals}f}B"
    elif magnitude >= 1_000_000:
        return f"{sign}${magnitude/1_000_000:.{decimals}f}M"
    elif magnitude >= 1_000:
        return f"{sign}${magnitude/1_000:.{decimals}f}K"
    else:
        return f"{sign}${magnitude:.{decimals}f}"


def format_percentage(value: float, decimals: int = 1) -> str:
    """Format value as percentage."""
    return f"{value:.{decimals}f}%"


def format_multiple(value: float, decimals: int = 2) -> str:
    """Format value as multiple."""
    return f"{value:.{decimals}f}x"


def generate_waterfall_summary(waterfall: Dict[str, Any]) -> str:
    """
    Generate a text summary of a portfolio waterfall.

    Args:
        waterfall: Output of build_portfolio_waterfall

    Returns:
        Multi-line text summary
    """
    yearly = waterfall.get("yearly", [])
    if not yearly:
        return "No cashflow data available for this portfolio"

    summary = f"Portfolio Waterfall ({yearly[0].year} to {yearly[-1].year}):\n"
    summary += f"- Total commitment: {format_currency(waterfall['total_commitment'], 1)}\n"

    peak_outflow = waterfall.get("peak_outflow")
    if peak_outflow:
        summary += f"- Peak outflow: {format_currency(peak_outflow['amount'], 1)} in {peak_outflow['year']}\n"

    peak_inflow = waterfall.get("peak_inflow")
    if peak_inflow:
        summary += f"- Peak inflow: {format_currency(peak_inflow['amount'], 1)} in {peak_inflow['year']}\n"

    break_even_year = waterfall.get("break_even_year")
    if break_even_year is not None:
        summary += f"- Break-even year: {break_even_year}\n"
    else:
        summary += "- Break-even year: not reached\n"

    summary += f"- Final cumulative net: {format_currency(waterfall['final_cumulative'], 1)}"
    return summary
