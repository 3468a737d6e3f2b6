"""
Data Layer Package.

This package handles upload parsing, collection persistence and the service
that connects stored records to the computation engines.
"""

from .upload_formats import (
    MULTI_FUND_FORMAT,
    SINGLE_FUND_FORMAT,
    UploadFormatError,
    GeneralFundUpload,
    SingleFundUpload,
    parse_multi_fund_upload,
    multi_fund_upload_to_records,
    export_multi_fund_upload,
    multi_fund_template,
    parse_single_fund_upload,
    single_fund_upload_to_templates,
    parse_year_column_upload,
    parse_general_fund_cashflow_lines,
    export_portfolio_cashflows,
    import_portfolio_cashflows
)

from .store import (
    CollectionRecord,
    CollectionStore
)

from .dashboard_service import DashboardService

__all__ = [
    # Upload formats
    "MULTI_FUND_FORMAT",
    "SINGLE_FUND_FORMAT",
    "UploadFormatError",
    "GeneralFundUpload",
    "SingleFundUpload",
    "parse_multi_fund_upload",
    "multi_fund_upload_to_records",
    "export_multi_fund_upload",
    "multi_fund_template",
    "parse_single_fund_upload",
    "single_fund_upload_to_templates",
    "parse_year_column_upload",
    "parse_general_fund_cashflow_lines",
    "export_portfolio_cashflows",
    "import_portfolio_cashflows",

    # Persistence
    "CollectionRecord",
    "CollectionStore",
    "DashboardService"
]
