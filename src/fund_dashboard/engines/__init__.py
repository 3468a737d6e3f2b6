"""
Computation Engines Package.

This package contains all pure Python computation modules for fund portfolio
analysis. These modules are independent of the collection store and the API.
"""

from .safe_math import (
    safe_float,
    safe_int,
    safe_divide,
    safe_sum,
    pattern_value
)

from .fund_metrics_engine import (
    calculate_multiple,
    calculate_called_percent,
    latest_cashflow_record,
    compute_fund_metrics,
    calculate_position_metrics,
    calculate_vintage_analysis,
    calculate_overall_metrics
)

from .projection_engine import (
    FUND_TYPE_EXPECTATIONS,
    PORTFOLIO_SCENARIOS,
    get_fund_type_expectation,
    get_scenario,
    project_cash_flows,
    project_portfolio_cash_flows
)

from .cash_flow_engine import (
    AggregationPeriod,
    CashflowView,
    filter_by_fund,
    filter_by_year_range,
    sort_by_period,
    aggregate_by_period,
    calculate_cumulative_performance,
    calculate_pacing_metrics,
    merge_actual_and_projected,
    build_cashflow_table
)

from .waterfall_engine import (
    index_cashflows_by_fund_year,
    calculate_allocation_percentage,
    build_portfolio_waterfall,
    build_net_cashflow_analysis
)

from .visualization_engine import (
    prepare_waterfall_chart_data,
    prepare_fund_performance_data,
    prepare_cashflow_table_chart_data,
    prepare_vintage_table,
    format_currency,
    format_percentage,
    format_multiple,
    generate_waterfall_summary
)

__all__ = [
    # Safe math
    "safe_float",
    "safe_int",
    "safe_divide",
    "safe_sum",
    "pattern_value",

    # Fund Metrics
    "calculate_multiple",
    "calculate_called_percent",
    "latest_cashflow_record",
    "compute_fund_metrics",
    "calculate_position_metrics",
    "calculate_vintage_analysis",
    "calculate_overall_metrics",

    # Projection
    "FUND_TYPE_EXPECTATIONS",
    "PORTFOLIO_SCENARIOS",
    "get_fund_type_expectation",
    "get_scenario",
    "project_cash_flows",
    "project_portfolio_cash_flows",

    # Cash Flow
    "AggregationPeriod",
    "CashflowView",
    "filter_by_fund",
    "filter_by_year_range",
    "sort_by_period",
    "aggregate_by_period",
    "calculate_cumulative_performance",
    "calculate_pacing_metrics",
    "merge_actual_and_projected",
    "build_cashflow_table",

    # Waterfall
    "index_cashflows_by_fund_year",
    "calculate_allocation_percentage",
    "build_portfolio_waterfall",
    "build_net_cashflow_analysis",

    # Visualization
    "prepare_waterfall_chart_data",
    "prepare_fund_performance_data",
    "prepare_cashflow_table_chart_data",
    "prepare_vintage_table",
    "format_currency",
    "format_percentage",
    "format_multiple",
    "generate_waterfall_summary"
]
