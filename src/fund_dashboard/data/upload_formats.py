"""
Upload Formats.

This module parses and writes the CSV-like text formats the dashboard accepts:

- MULTI_FUND_FORMAT: many general funds, 12 yearly net cashflow percentages each
- SINGLE_FUND_FORMAT: one committed fund, 13 yearly net cashflow percentages
- Year-column net cashflow upload matched against known funds
- General fund cashflow lines (year, net, contributions, distributions, NAV)
- Portfolio cashflow export in long format, and its re-import

Cells hold percent numbers (-25.5 means 25.5% of commitment called). Parsed
values are fractions of commitment. Malformed input raises UploadFormatError
before any record is built.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple, Iterable
import io
import logging
import re
import uuid

import pandas as pd

from ..config import (
    MULTI_FUND_YEAR_COLUMNS,
    MULTI_FUND_METADATA_COLUMNS,
    SINGLE_FUND_YEAR_COLUMNS,
    UPLOAD_DEFAULT_LIFESPAN,
    UPLOAD_DEFAULT_MANAGEMENT_FEE_RATE,
    UPLOAD_DEFAULT_CARRIED_INTEREST_RATE,
)
from ..models import (
    Fund,
    GeneralFund,
    GeneralFundNetCashflow,
    FundCashflowTemplate,
    Portfolio,
    PortfolioPosition,
)
from ..engines.safe_math import safe_float, safe_int

logger = logging.getLogger(__name__)


MULTI_FUND_FORMAT = "multi_fund_12_year"
SINGLE_FUND_FORMAT = "single_fund_13_year"

MULTI_FUND_HEADERS = MULTI_FUND_METADATA_COLUMNS + [
    f"Year {i}" for i in range(1, MULTI_FUND_YEAR_COLUMNS + 1)
]

PORTFOLIO_EXPORT_COLUMNS = [
    "Fund Id", "Fund", "Vintage", "Commitment", "Year",
    "Net %", "Contributions %", "Distributions %", "NAV %",
]

_YEAR_OFFSET_HEADER = re.compile(r"^year\s*(\d+)$", re.IGNORECASE)


class UploadFormatError(ValueError):
    """Raised when uploaded text does not match its declared format."""


def new_record_id(prefix: str) -> str:
    """Generate a collection-unique record id such as 'gf-3f2a9c1b7d4e'."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


# ==============================================================================
# PARSED UPLOAD SHAPES
# ==============================================================================

@dataclass
class GeneralFundUpload:
    """One row of the multi-fund upload; yearly maps year offset (1-based) to fraction."""
    name: str
    vintage: int
    fund_type: str
    subtype: str = ""
    geography: str = ""
    yearly: Dict[int, float] = field(default_factory=dict)


@dataclass
class SingleFundUpload:
    """The single-fund upload; yearly maps year of life 1..13 to net fraction."""
    fund_name: str
    vintage: int
    commitment_amount: float
    fund_type: str
    management_fee_rate: Optional[float] = None
    carried_interest_rate: Optional[float] = None
    tax_rate: Optional[float] = None
    yearly: Dict[int, float] = field(default_factory=dict)


# ==============================================================================
# HELPERS
# ==============================================================================

def _content_lines(text: str, skip_comments: bool = False) -> List[str]:
    lines = []
    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if skip_comments and stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _read_grid(lines: List[str]) -> pd.DataFrame:
    """
    Read CSV lines into a frame of raw string cells, one row per line.

    Quoted cells may contain commas. No row is used as header or index, and
    rows shorter than the widest row are padded with NaN.
    """
    # Unquoted comma count bounds the field count of every row
    width = max(line.count(",") for line in lines) + 1
    return pd.read_csv(
        io.StringIO("\n".join(lines)),
        header=None,
        names=list(range(width)),
        index_col=False,
        dtype=str,
        keep_default_na=False,
        skipinitialspace=True,
        engine="python"
    )


def _row_cells(row: pd.Series, drop_trailing_empty: bool = True) -> List[str]:
    """Stripped cells present in a grid row, optionally without trailing empty cells."""
    cells = [str(cell).strip() for cell in row.dropna().tolist()]
    if drop_trailing_empty:
        while cells and cells[-1] == "":
            cells.pop()
    return cells


def _grid_rows(lines: List[str], drop_trailing_empty: bool = True) -> List[List[str]]:
    grid = _read_grid(lines)
    return [_row_cells(row, drop_trailing_empty) for _, row in grid.iterrows()]


def _percent_cells_to_fractions(cells: Iterable[str], context: str) -> List[float]:
    """
    Convert percent cells to fractions. Blank cells count as 0, text raises.
    """
    raw = pd.Series(list(cells), dtype=object).fillna("").astype(str).str.strip()
    numbers = pd.to_numeric(raw.where(raw != "", "0"), errors="coerce")

    bad = numbers.isna()
    if bad.any():
        position = int(bad.idxmax())
        raise UploadFormatError(f"{context}: non-numeric value '{raw.iloc[position]}'")

    return [safe_float(value) / 100 for value in numbers.tolist()]


def _required_int(value: str, context: str) -> int:
    number = safe_int(value)
    if number is None:
        raise UploadFormatError(f"{context}: expected a whole number, got '{value}'")
    return number


def _required_float(value: str, context: str) -> float:
    number = safe_float(value, default=float("nan"))
    if number != number:
        raise UploadFormatError(f"{context}: expected a number, got '{value}'")
    return number


def _optional_float(values: List[str], index: int) -> Optional[float]:
    if index >= len(values) or not values[index]:
        return None
    return safe_float(values[index], default=None)


# ==============================================================================
# MULTI-FUND 12-YEAR FORMAT
# ==============================================================================

def parse_multi_fund_upload(text: str) -> List[GeneralFundUpload]:
    """
    Parse the multi-fund upload.

    Expected layout: header `Fund,Vintage,Type,Subtype,Geography,Year 1..Year 12`
    followed by one row per fund. Lines starting with '#' are ignored. Rows
    with fewer than 17 columns are skipped with a warning.

    Args:
        text: Uploaded file content

    Returns:
        One GeneralFundUpload per accepted row, with offsets 1..12 in order

    Raises:
        UploadFormatError: Missing header, no data rows, or a non-numeric
            vintage or year value

    Example:
        >>> rows = parse_multi_fund_upload(open("funds.csv").read())
        >>> rows[0].yearly[1]
        -0.291
    """
    lines = _content_lines(text, skip_comments=True)
    if len(lines) < 2:
        raise UploadFormatError("File must contain a header row and at least one data row")

    # Trailing empty cells are kept: a blank Year 12 is a valid 0
    rows = _grid_rows(lines, drop_trailing_empty=False)

    header = rows[0]
    if not header or header[0].lower() != MULTI_FUND_HEADERS[0].lower():
        raise UploadFormatError(f"Missing header row, expected columns {','.join(MULTI_FUND_HEADERS)}")

    column_count = len(MULTI_FUND_HEADERS)
    metadata_count = len(MULTI_FUND_METADATA_COLUMNS)

    uploads = []
    for row_number, cells in enumerate(rows[1:], start=2):
        if len(cells) < column_count:
            logger.warning(f"Row {row_number} has {len(cells)} columns, expected {column_count}, skipping")
            continue

        context = f"Row {row_number}"
        name, vintage, fund_type, subtype, geography = cells[:metadata_count]
        fractions = _percent_cells_to_fractions(cells[metadata_count:column_count], context)

        uploads.append(GeneralFundUpload(
            name=name,
            vintage=_required_int(vintage, context),
            fund_type=fund_type,
            subtype=subtype or fund_type,
            geography=geography,
            yearly={offset: value for offset, value in enumerate(fractions, start=1)}
        ))

    if not uploads:
        logger.warning("Multi-fund upload contained no complete rows")
        return []

    logger.info(f"Parsed {len(uploads)} funds from multi-fund upload")
    return uploads


def multi_fund_upload_to_records(
    uploads: Iterable[GeneralFundUpload],
    user_id: str = ""
) -> Tuple[List[GeneralFund], List[GeneralFundNetCashflow]]:
    """
    Turn parsed multi-fund rows into general funds and percentage cashflows.

    Year offset N becomes calendar year vintage + N - 1. Contributions take
    the negative part of the net value, distributions the positive part, and
    NAV follows a linear run-off of 1 - N * 0.1 floored at 0. Zero cells
    produce no record.

    Returns:
        Tuple of (general funds, cashflow records)
    """
    funds = []
    cashflows = []

    for upload in uploads:
        fund_id = new_record_id("gf")
        strategy = upload.subtype or upload.fund_type
        funds.append(GeneralFund(
            id=fund_id,
            name=upload.name,
            vintage=upload.vintage,
            fund_type=upload.fund_type,
            strategy=strategy,
            geography=upload.geography,
            expected_lifespan=UPLOAD_DEFAULT_LIFESPAN,
            management_fee_rate=UPLOAD_DEFAULT_MANAGEMENT_FEE_RATE,
            carried_interest_rate=UPLOAD_DEFAULT_CARRIED_INTEREST_RATE,
            description=f"{upload.fund_type} fund focused on {strategy} in {upload.geography}",
            user_id=user_id
        ))

        for offset, net in sorted(upload.yearly.items()):
            if net == 0:
                continue
            cashflows.append(GeneralFundNetCashflow(
                id=new_record_id("gfc"),
                fund_id=fund_id,
                year=upload.vintage + offset - 1,
                net_cashflow_percentage=net,
                contributions_percentage=min(net, 0.0),
                distributions_percentage=max(net, 0.0),
                nav_percentage=max(0.0, 1 - offset * 0.1),
                user_id=user_id
            ))

    logger.info(f"Created {len(funds)} general funds with {len(cashflows)} cashflow records")
    return funds, cashflows


def export_multi_fund_upload(
    general_funds: Iterable[GeneralFund],
    cashflows: Iterable[GeneralFundNetCashflow]
) -> str:
    """
    Write general funds back out in the multi-fund format.

    Year N is the fund's calendar year vintage + N - 1; years without a record
    are written as 0.
    """
    by_fund_year = {(cf.fund_id, cf.year): cf for cf in cashflows}

    rows = []
    for fund in general_funds:
        row = [fund.name, str(fund.vintage), fund.fund_type, fund.strategy, fund.geography]
        for offset in range(1, MULTI_FUND_YEAR_COLUMNS + 1):
            record = by_fund_year.get((fund.id, fund.vintage + offset - 1))
            value = record.net_cashflow_percentage if record else 0.0
            row.append(f"{value * 100:.2f}")
        rows.append(row)

    frame = pd.DataFrame(rows, columns=MULTI_FUND_HEADERS)
    return frame.to_csv(index=False)


def multi_fund_template() -> str:
    """Blank multi-fund upload with instruction comments and sample rows."""
    instructions = [
        "# INSTRUCTIONS:",
        "# - Fund: Fund name",
        "# - Vintage: Fund vintage year",
        "# - Type: FOF, PE, VC, RE, Infrastructure, Credit, Hedge Fund, Secondary",
        "# - Subtype: Strategy within fund type",
        "# - Geography: Investment geography",
        "# - Year 1-12: Net cashflow as percentage (negative = calls, positive = distributions)",
        "# - Example: -25.5 means 25.5% of commitment called",
        "# - Example: 15.2 means 15.2% of commitment distributed",
    ]
    samples = [
        "QGP II,2023,FOF,VC,India,-29.1,-15.52,-41.09,-2.09,25.36,10.56,36.94,51.43,47.00,54.83,4.16,0",
        "Alpinvest,2024,Secondary,Lower MM,EU,-15.52,-37.39,-3.0,-2.09,25.36,41.86,41.71,25.14,14.69,14.02,4.16,0",
        "Quadrum,2024,PE,Tech,EU,-38.53,-48.21,-20.0,21.74,25.36,41.86,41.71,25.14,14.69,14.02,4.16,0",
    ]
    return "\n".join(instructions + [",".join(MULTI_FUND_HEADERS)] + samples)


# ==============================================================================
# SINGLE-FUND 13-YEAR FORMAT
# ==============================================================================

def parse_single_fund_upload(text: str) -> SingleFundUpload:
    """
    Parse the single-fund upload.

    Line 1: `FundName,Vintage,CommitmentAmount,FundType[,FeeRate,CarryRate,TaxRate]`.
    Line 2: exactly 13 net cashflow percentages, one per year of fund life.

    Raises:
        UploadFormatError: Fewer than 2 lines, a missing name, non-numeric
            vintage or commitment, or a cashflow row without exactly 13 values
    """
    lines = _content_lines(text)
    if len(lines) < 2:
        raise UploadFormatError("Upload must contain fund information and cashflow data")

    info, values = _grid_rows(lines[:2])
    if not info or not info[0]:
        raise UploadFormatError("Fund name is missing")
    if len(info) < 3:
        raise UploadFormatError("Fund information needs name, vintage and commitment amount")

    if len(values) != SINGLE_FUND_YEAR_COLUMNS:
        raise UploadFormatError(
            f"Cashflow row must contain exactly {SINGLE_FUND_YEAR_COLUMNS} yearly percentages, "
            f"found {len(values)}"
        )

    fractions = _percent_cells_to_fractions(values, "Cashflow row")

    upload = SingleFundUpload(
        fund_name=info[0],
        vintage=_required_int(info[1], "Vintage"),
        commitment_amount=_required_float(info[2], "Commitment amount"),
        fund_type=info[3] if len(info) > 3 and info[3] else "Private Equity",
        management_fee_rate=_optional_float(info, 4),
        carried_interest_rate=_optional_float(info, 5),
        tax_rate=_optional_float(info, 6),
        yearly={year: value for year, value in enumerate(fractions, start=1)}
    )

    logger.info(f"Parsed single-fund upload for {upload.fund_name} ({upload.vintage})")
    return upload


def single_fund_upload_to_fund(upload: SingleFundUpload, user_id: str = "") -> Fund:
    """Build a new committed Fund from a single-fund upload."""
    return Fund(
        id=new_record_id("fund"),
        name=upload.fund_name,
        vintage=upload.vintage,
        commitment_amount=upload.commitment_amount,
        fund_type=upload.fund_type,
        management_fee_rate=upload.management_fee_rate,
        carried_interest_rate=upload.carried_interest_rate,
        tax_rate=upload.tax_rate,
        user_id=user_id
    )


def single_fund_upload_to_templates(
    upload: SingleFundUpload,
    fund_id: str,
    user_id: str = ""
) -> List[FundCashflowTemplate]:
    """Build the 13 year-of-life templates for a fund."""
    return [
        FundCashflowTemplate(
            id=new_record_id("template"),
            fund_id=fund_id,
            year=year,
            net_cashflow_percentage=value,
            user_id=user_id
        )
        for year, value in sorted(upload.yearly.items())
    ]


# ==============================================================================
# YEAR-COLUMN NET CASHFLOW UPLOAD
# ==============================================================================

def match_fund_by_name(name: str, funds: Iterable[Any]) -> Optional[Any]:
    """First fund whose name contains, or is contained in, the given name (case-insensitive)."""
    needle = name.lower()
    for fund in funds:
        candidate = fund.name.lower()
        if candidate in needle or needle in candidate:
            return fund
    return None


def parse_year_column_upload(text: str, funds: List[Fund]) -> List[Dict[str, Any]]:
    """
    Parse a net cashflow upload with one column per year and match rows to funds.

    The header must contain Fund and Vintage. Year columns are either calendar
    years ("2021") or year offsets ("Year 3", calendar year vintage + 2 of the
    matched fund). Other columns are ignored. Unmatched fund names are skipped
    with a warning.

    Returns:
        List of dictionaries with fund_id, fund_name, vintage,
        commitment_amount and yearly_cashflows ([{year, net_cashflow_percentage}])

    Raises:
        UploadFormatError: Missing Fund/Vintage columns, no year columns, or
            no row could be matched
    """
    lines = _content_lines(text, skip_comments=True)
    if len(lines) < 2:
        raise UploadFormatError("File must contain at least a header row and one data row")

    rows = _grid_rows(lines)
    header = rows[0]

    if "Fund" not in header or "Vintage" not in header:
        raise UploadFormatError('File must contain "Fund" and "Vintage" columns')

    year_columns = []
    for column in header:
        if column.isdigit():
            year_columns.append((column, int(column), False))
            continue
        match = _YEAR_OFFSET_HEADER.match(column)
        if match:
            year_columns.append((column, int(match.group(1)), True))

    if not year_columns:
        raise UploadFormatError("No valid year columns found")

    parsed = []
    for row_number, cells in enumerate(rows[1:], start=2):
        if len(cells) > len(header):
            logger.warning(
                f"Row {row_number} has {len(cells)} values for {len(header)} columns, skipping"
            )
            continue

        row = dict(zip(header, cells + [""] * (len(header) - len(cells))))
        fund_name = row["Fund"]
        if not fund_name or safe_int(row["Vintage"]) is None:
            logger.warning(f"Row {row_number} has no fund name or vintage, skipping")
            continue

        fund = match_fund_by_name(fund_name, funds)
        if fund is None:
            logger.warning(f"No matching fund found for: {fund_name}")
            continue

        yearly_cashflows = []
        for column, number, is_offset in year_columns:
            year = fund.vintage + number - 1 if is_offset else number
            yearly_cashflows.append({
                "year": year,
                "net_cashflow_percentage": safe_float(row[column]) / 100,
            })

        parsed.append({
            "fund_id": fund.id,
            "fund_name": fund.name,
            "vintage": fund.vintage,
            "commitment_amount": fund.commitment_amount,
            "yearly_cashflows": yearly_cashflows,
        })

    if not parsed:
        raise UploadFormatError("No valid fund data could be parsed from the file")

    logger.info(f"Matched {len(parsed)} of {len(rows) - 1} uploaded rows to funds")
    return parsed


# ==============================================================================
# GENERAL FUND CASHFLOW LINES
# ==============================================================================

def parse_general_fund_cashflow_lines(
    text: str,
    fund_id: str,
    user_id: str = ""
) -> List[GeneralFundNetCashflow]:
    """
    Parse bulk `year,net%,contributions%,distributions%,nav%` lines for one general fund.

    Contributions are stored as the negative fraction and distributions as
    the positive fraction whatever sign was typed.

    Raises:
        UploadFormatError: A line with fewer than 5 values or a non-numeric value
    """
    lines = _content_lines(text)
    if not lines:
        return []

    records = []
    for line_number, cells in enumerate(_grid_rows(lines), start=1):
        if len(cells) < 5:
            raise UploadFormatError(f"Line {line_number}: expected year,net,contributions,distributions,nav")

        context = f"Line {line_number}"
        year = _required_int(cells[0], context)
        net, contributions, distributions, nav = _percent_cells_to_fractions(cells[1:5], context)

        records.append(GeneralFundNetCashflow(
            id=new_record_id("gfc"),
            fund_id=fund_id,
            year=year,
            net_cashflow_percentage=net,
            contributions_percentage=-abs(contributions),
            distributions_percentage=abs(distributions),
            nav_percentage=nav,
            user_id=user_id
        ))

    logger.debug(f"Parsed {len(records)} cashflow lines for general fund {fund_id}")
    return records


# ==============================================================================
# PORTFOLIO EXPORT / IMPORT
# ==============================================================================

def export_portfolio_cashflows(
    portfolio: Portfolio,
    positions: Iterable[PortfolioPosition],
    general_funds: Iterable[GeneralFund],
    cashflows: Iterable[GeneralFundNetCashflow]
) -> str:
    """
    Export a portfolio's positions and their percentage cashflows as long-format CSV.

    One row per position and year, percentages written in percent units.
    """
    funds_by_id = {f.id: f for f in general_funds}
    cashflows = list(cashflows)

    rows = []
    for position in positions:
        if position.portfolio_id != portfolio.id:
            continue
        fund = funds_by_id.get(position.fund_id)
        if fund is None:
            logger.warning(f"Position {position.id} references unknown fund {position.fund_id}, skipping")
            continue

        fund_cashflows = sorted((cf for cf in cashflows if cf.fund_id == fund.id), key=lambda cf: cf.year)
        for cf in fund_cashflows:
            rows.append({
                "Fund Id": fund.id,
                "Fund": fund.name,
                "Vintage": fund.vintage,
                "Commitment": safe_float(position.commitment_amount),
                "Year": cf.year,
                "Net %": cf.net_cashflow_percentage * 100,
                "Contributions %": cf.contributions_percentage * 100,
                "Distributions %": cf.distributions_percentage * 100,
                "NAV %": cf.nav_percentage * 100,
            })

    frame = pd.DataFrame(rows, columns=PORTFOLIO_EXPORT_COLUMNS)
    logger.info(f"Exported {len(frame)} cashflow rows for portfolio {portfolio.id}")
    return frame.to_csv(index=False, float_format="%.6f")


def import_portfolio_cashflows(text: str, user_id: str = "") -> List[GeneralFundNetCashflow]:
    """
    Read a portfolio export back into percentage cashflow records.

    A fund appearing in several positions is read once per year; the first
    row wins.

    Raises:
        UploadFormatError: Missing columns or a non-numeric value
    """
    lines = _content_lines(text)
    if not lines:
        raise UploadFormatError("Export is empty")

    rows = _grid_rows(lines)
    header = rows[0]
    missing = [c for c in PORTFOLIO_EXPORT_COLUMNS if c not in header]
    if missing:
        raise UploadFormatError(f"Export is missing columns: {', '.join(missing)}")

    records = []
    seen = set()
    for row_number, cells in enumerate(rows[1:], start=2):
        context = f"Row {row_number}"
        row = dict(zip(header, cells + [""] * (len(header) - len(cells))))
        key = (row["Fund Id"], _required_int(row["Year"], context))
        if key in seen:
            continue
        seen.add(key)

        net, contributions, distributions, nav = _percent_cells_to_fractions(
            [row["Net %"], row["Contributions %"], row["Distributions %"], row["NAV %"]], context
        )
        records.append(GeneralFundNetCashflow(
            id=new_record_id("gfc"),
            fund_id=key[0],
            year=key[1],
            net_cashflow_percentage=net,
            contributions_percentage=contributions,
            distributions_percentage=distributions,
            nav_percentage=nav,
            user_id=user_id
        ))

    logger.info(f"Imported {len(records)} cashflow records from portfolio export")
    return records
