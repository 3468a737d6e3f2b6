"""
Dashboard Service Layer.

This module provides a clean interface between the computation engines and the
collection store. It loads collections into records, applies edits with the
cascading rules of the dashboard, and hands plain records to the engines.
"""

from dataclasses import fields
from typing import List, Dict, Any, Optional, Type, TypeVar
from datetime import datetime
import logging

from ..config import COLLECTION_KEYS, PACING_LOOKBACK_YEARS
from ..models import (
    Fund,
    CashflowRecord,
    GeneralFund,
    GeneralFundNetCashflow,
    FundCashflowTemplate,
    Portfolio,
    PortfolioPosition,
)
from ..engines.fund_metrics_engine import (
    compute_fund_metrics,
    calculate_overall_metrics,
    calculate_vintage_analysis,
)
from ..engines.projection_engine import project_cash_flows, get_scenario
from ..engines.cash_flow_engine import (
    CashflowView,
    calculate_cumulative_performance,
    calculate_pacing_metrics,
    build_cashflow_table,
)
from ..engines.waterfall_engine import (
    build_portfolio_waterfall,
    build_net_cashflow_analysis,
    calculate_allocation_percentage,
)
from .store import CollectionStore
from .upload_formats import (
    MULTI_FUND_FORMAT,
    SINGLE_FUND_FORMAT,
    UploadFormatError,
    new_record_id,
    parse_multi_fund_upload,
    multi_fund_upload_to_records,
    parse_single_fund_upload,
    single_fund_upload_to_fund,
    single_fund_upload_to_templates,
    parse_year_column_upload,
    parse_general_fund_cashflow_lines,
    export_portfolio_cashflows,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")


def _now() -> str:
    return datetime.utcnow().isoformat()


class DashboardService:
    """
    Record management and analysis over a CollectionStore.

    Lookups of unknown ids return None; edits of unknown ids raise KeyError.
    """

    def __init__(self, store: Optional[CollectionStore] = None):
        """
        Initialize the service.

        Args:
            store: Collection store (defaults to a CollectionStore built from config)
        """
        self.store = store or CollectionStore()
        self.user_id = self.store.user_id

    # ------------------------------------------------------------------
    # Collection access
    # ------------------------------------------------------------------

    def _load(self, key: str, record_type: Type[RecordT]) -> List[RecordT]:
        return [record_type.from_dict(d) for d in self.store.load(COLLECTION_KEYS[key])]

    def _save(self, key: str, records: List[Any]):
        self.store.save(COLLECTION_KEYS[key], [r.to_dict() for r in records])

    @staticmethod
    def _find(records: List[RecordT], record_id: str) -> Optional[RecordT]:
        return next((r for r in records if r.id == record_id), None)

    def _update(self, key: str, record_type: Type[RecordT], record_id: str, changes: Dict[str, Any]) -> RecordT:
        records = self._load(key, record_type)
        record = self._find(records, record_id)
        if record is None:
            raise KeyError(f"{record_type.__name__} {record_id} not found")

        editable = {f.name for f in fields(record)}
        for name, value in changes.items():
            if name in ("id", "created_at", "user_id") or name not in editable:
                raise ValueError(f"Field {name} cannot be updated on {record_type.__name__}")
            setattr(record, name, value)
        record.updated_at = _now()

        self._save(key, records)
        return record

    # ------------------------------------------------------------------
    # Funds and quarterly cashflows
    # ------------------------------------------------------------------

    def list_funds(self) -> List[Fund]:
        return self._load("funds", Fund)

    def get_fund(self, fund_id: str) -> Optional[Fund]:
        return self._find(self.list_funds(), fund_id)

    def add_fund(
        self,
        name: str,
        vintage: int,
        commitment_amount: float,
        fund_type: str,
        management_fee_rate: Optional[float] = None,
        carried_interest_rate: Optional[float] = None,
        tax_rate: Optional[float] = None
    ) -> Fund:
        """Create a committed fund."""
        fund = Fund(
            id=new_record_id("fund"),
            name=name,
            vintage=vintage,
            commitment_amount=commitment_amount,
            fund_type=fund_type,
            management_fee_rate=management_fee_rate,
            carried_interest_rate=carried_interest_rate,
            tax_rate=tax_rate,
            user_id=self.user_id
        )
        funds = self.list_funds()
        funds.append(fund)
        self._save("funds", funds)
        logger.info(f"Added fund {fund.name} ({fund.id})")
        return fund

    def update_fund(self, fund_id: str, **changes) -> Fund:
        return self._update("funds", Fund, fund_id, changes)

    def delete_fund(self, fund_id: str) -> None:
        """Delete a fund with its cashflow records and templates."""
        funds = self.list_funds()
        if self._find(funds, fund_id) is None:
            raise KeyError(f"Fund {fund_id} not found")

        self._save("funds", [f for f in funds if f.id != fund_id])
        self._save("cashflows", [cf for cf in self.list_cashflows() if cf.fund_id != fund_id])
        self._save("cashflow_templates", [t for t in self.list_cashflow_templates() if t.fund_id != fund_id])
        logger.info(f"Deleted fund {fund_id} with its cashflows and templates")

    def list_cashflows(self, fund_id: Optional[str] = None) -> List[CashflowRecord]:
        records = self._load("cashflows", CashflowRecord)
        if fund_id is not None:
            records = [cf for cf in records if cf.fund_id == fund_id]
        return records

    def add_cashflow(
        self,
        fund_id: str,
        year: int,
        quarter: int,
        calls: float = 0.0,
        distributions: float = 0.0,
        nav: float = 0.0,
        management_fees: Optional[float] = None,
        carried_interest: Optional[float] = None,
        taxes: Optional[float] = None
    ) -> CashflowRecord:
        """Record one reported quarter for an existing fund."""
        if self.get_fund(fund_id) is None:
            raise KeyError(f"Fund {fund_id} not found")
        if quarter not in (1, 2, 3, 4):
            raise ValueError(f"Quarter must be 1-4, got {quarter}")

        record = CashflowRecord(
            id=new_record_id("cf"),
            fund_id=fund_id,
            year=year,
            quarter=quarter,
            calls=calls,
            distributions=distributions,
            nav=nav,
            management_fees=management_fees,
            carried_interest=carried_interest,
            taxes=taxes,
            user_id=self.user_id
        )
        records = self.list_cashflows()
        records.append(record)
        self._save("cashflows", records)
        return record

    def update_cashflow(self, cashflow_id: str, **changes) -> CashflowRecord:
        return self._update("cashflows", CashflowRecord, cashflow_id, changes)

    def delete_cashflow(self, cashflow_id: str) -> None:
        records = self.list_cashflows()
        if self._find(records, cashflow_id) is None:
            raise KeyError(f"Cashflow {cashflow_id} not found")
        self._save("cashflows", [cf for cf in records if cf.id != cashflow_id])

    def list_cashflow_templates(self, fund_id: Optional[str] = None) -> List[FundCashflowTemplate]:
        templates = self._load("cashflow_templates", FundCashflowTemplate)
        if fund_id is not None:
            templates = [t for t in templates if t.fund_id == fund_id]
        return sorted(templates, key=lambda t: (t.fund_id, t.year))

    # ------------------------------------------------------------------
    # General funds and percentage cashflows
    # ------------------------------------------------------------------

    def list_general_funds(self) -> List[GeneralFund]:
        return self._load("general_funds", GeneralFund)

    def get_general_fund(self, fund_id: str) -> Optional[GeneralFund]:
        return self._find(self.list_general_funds(), fund_id)

    def add_general_fund(self, name: str, vintage: int, fund_type: str, **details) -> GeneralFund:
        """Create a general fund; details are optional GeneralFund fields."""
        fund = GeneralFund(
            id=new_record_id("gf"),
            name=name,
            vintage=vintage,
            fund_type=fund_type,
            user_id=self.user_id,
            **details
        )
        funds = self.list_general_funds()
        funds.append(fund)
        self._save("general_funds", funds)
        logger.info(f"Added general fund {fund.name} ({fund.id})")
        return fund

    def update_general_fund(self, fund_id: str, **changes) -> GeneralFund:
        return self._update("general_funds", GeneralFund, fund_id, changes)

    def delete_general_fund(self, fund_id: str) -> None:
        """Delete a general fund and its percentage cashflows."""
        funds = self.list_general_funds()
        if self._find(funds, fund_id) is None:
            raise KeyError(f"General fund {fund_id} not found")

        self._save("general_funds", [f for f in funds if f.id != fund_id])
        self._save(
            "general_fund_cashflows",
            [cf for cf in self.list_general_fund_cashflows() if cf.fund_id != fund_id]
        )
        logger.info(f"Deleted general fund {fund_id} with its cashflows")

    def list_general_fund_cashflows(self, fund_id: Optional[str] = None) -> List[GeneralFundNetCashflow]:
        records = self._load("general_fund_cashflows", GeneralFundNetCashflow)
        if fund_id is not None:
            records = [cf for cf in records if cf.fund_id == fund_id]
        return records

    def set_general_fund_cashflows(self, fund_id: str, text: str) -> List[GeneralFundNetCashflow]:
        """
        Replace a general fund's cashflows from bulk `year,net,contrib,dist,nav` lines.

        Raises:
            KeyError: Unknown general fund
            UploadFormatError: Malformed lines; nothing is written
        """
        if self.get_general_fund(fund_id) is None:
            raise KeyError(f"General fund {fund_id} not found")

        new_records = parse_general_fund_cashflow_lines(text, fund_id, self.user_id)
        kept = [cf for cf in self.list_general_fund_cashflows() if cf.fund_id != fund_id]
        self._save("general_fund_cashflows", kept + new_records)
        logger.info(f"Stored {len(new_records)} cashflow years for general fund {fund_id}")
        return new_records

    # ------------------------------------------------------------------
    # Portfolios
    # ------------------------------------------------------------------

    def list_portfolios(self) -> List[Portfolio]:
        return self._load("portfolios", Portfolio)

    def get_portfolio(self, portfolio_id: str) -> Optional[Portfolio]:
        return self._find(self.list_portfolios(), portfolio_id)

    def add_portfolio(
        self,
        name: str,
        total_size: float,
        description: Optional[str] = None,
        client_id: Optional[str] = None
    ) -> Portfolio:
        portfolio = Portfolio(
            id=new_record_id("portfolio"),
            name=name,
            total_size=total_size,
            description=description,
            client_id=client_id,
            user_id=self.user_id
        )
        portfolios = self.list_portfolios()
        portfolios.append(portfolio)
        self._save("portfolios", portfolios)
        logger.info(f"Added portfolio {portfolio.name} ({portfolio.id})")
        return portfolio

    def delete_portfolio(self, portfolio_id: str) -> None:
        """Delete a portfolio and its positions."""
        portfolios = self.list_portfolios()
        if self._find(portfolios, portfolio_id) is None:
            raise KeyError(f"Portfolio {portfolio_id} not found")

        self._save("portfolios", [p for p in portfolios if p.id != portfolio_id])
        self._save(
            "portfolio_positions",
            [p for p in self._load("portfolio_positions", PortfolioPosition) if p.portfolio_id != portfolio_id]
        )
        logger.info(f"Deleted portfolio {portfolio_id} with its positions")

    def list_positions(self, portfolio_id: Optional[str] = None) -> List[PortfolioPosition]:
        positions = self._load("portfolio_positions", PortfolioPosition)
        if portfolio_id is not None:
            positions = [p for p in positions if p.portfolio_id == portfolio_id]
        return positions

    def add_position(self, portfolio_id: str, fund_id: str, commitment_amount: float) -> PortfolioPosition:
        """
        Commit an amount to a general fund within a portfolio.

        The allocation percentage is computed from the portfolio's total size.
        """
        portfolio = self.get_portfolio(portfolio_id)
        if portfolio is None:
            raise KeyError(f"Portfolio {portfolio_id} not found")
        if self.get_general_fund(fund_id) is None:
            raise KeyError(f"General fund {fund_id} not found")

        position = PortfolioPosition(
            id=new_record_id("position"),
            portfolio_id=portfolio_id,
            fund_id=fund_id,
            commitment_amount=commitment_amount,
            allocation_percentage=calculate_allocation_percentage(commitment_amount, portfolio.total_size),
            user_id=self.user_id
        )
        positions = self.list_positions()
        positions.append(position)
        self._save("portfolio_positions", positions)
        return position

    def remove_position(self, position_id: str) -> None:
        positions = self.list_positions()
        if self._find(positions, position_id) is None:
            raise KeyError(f"Position {position_id} not found")
        self._save("portfolio_positions", [p for p in positions if p.id != position_id])

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def import_upload(self, upload_format: str, text: str) -> Dict[str, Any]:
        """
        Import an upload in one of the supported formats.

        Args:
            upload_format: MULTI_FUND_FORMAT or SINGLE_FUND_FORMAT
            text: Raw upload content

        Raises:
            UploadFormatError: Unknown format or malformed content
        """
        importers = {
            MULTI_FUND_FORMAT: self.import_multi_fund_upload,
            SINGLE_FUND_FORMAT: self.import_single_fund_upload,
        }
        importer = importers.get(upload_format)
        if importer is None:
            raise UploadFormatError(f"Unknown upload format: {upload_format}")
        return importer(text)

    def import_multi_fund_upload(self, text: str) -> Dict[str, Any]:
        """
        Add the general funds and cashflows of a multi-fund upload.

        Returns:
            Dictionary with the created fund ids and record counts
        """
        uploads = parse_multi_fund_upload(text)
        new_funds, new_cashflows = multi_fund_upload_to_records(uploads, self.user_id)

        self._save("general_funds", self.list_general_funds() + new_funds)
        self._save("general_fund_cashflows", self.list_general_fund_cashflows() + new_cashflows)

        logger.info(f"Imported {len(new_funds)} general funds from multi-fund upload")
        return {
            "fund_ids": [f.id for f in new_funds],
            "funds_created": len(new_funds),
            "cashflows_created": len(new_cashflows),
        }

    def import_single_fund_upload(self, text: str) -> Dict[str, Any]:
        """
        Store the 13-year templates of a single-fund upload.

        A fund with the same name and vintage is reused and its templates are
        replaced; otherwise a new fund is created.
        """
        upload = parse_single_fund_upload(text)

        funds = self.list_funds()
        fund = next(
            (f for f in funds if f.name == upload.fund_name and f.vintage == upload.vintage),
            None
        )
        created = fund is None
        if created:
            fund = single_fund_upload_to_fund(upload, self.user_id)
            self._save("funds", funds + [fund])

        templates = single_fund_upload_to_templates(upload, fund.id, self.user_id)
        kept = [t for t in self._load("cashflow_templates", FundCashflowTemplate) if t.fund_id != fund.id]
        self._save("cashflow_templates", kept + templates)

        logger.info(f"Stored {len(templates)} templates for fund {fund.name} (new fund: {created})")
        return {"fund_id": fund.id, "fund_created": created, "templates_created": len(templates)}

    def analyze_year_column_upload(self, text: str) -> Dict[str, Any]:
        """Match a year-column net cashflow upload to funds and analyse it."""
        parsed = parse_year_column_upload(text, self.list_funds())
        analysis = build_net_cashflow_analysis(parsed)
        analysis["funds"] = parsed
        return analysis

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def fund_metrics(self, fund_id: str) -> Optional[Dict[str, Any]]:
        """Metrics for one fund with its metadata, or None for an unknown fund."""
        fund = self.get_fund(fund_id)
        if fund is None:
            logger.warning(f"Fund {fund_id} not found")
            return None

        metrics = compute_fund_metrics(fund, self.list_cashflows(fund_id))
        metrics.update({
            "fund_id": fund.id,
            "fund_name": fund.name,
            "vintage": fund.vintage,
            "fund_type": fund.fund_type,
            "commitment_amount": fund.commitment_amount,
        })
        return metrics

    def fund_projection(self, fund_id: str, scenario_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Projected yearly cashflows for one fund, or None for an unknown fund."""
        fund = self.get_fund(fund_id)
        if fund is None:
            logger.warning(f"Fund {fund_id} not found")
            return None

        scenario = get_scenario(scenario_id)
        return {
            "fund_id": fund.id,
            "scenario": scenario.id,
            "projection": project_cash_flows(fund, scenario, include_fees=True),
        }

    def fund_performance(self, fund_id: str) -> Optional[List[Dict[str, Any]]]:
        fund = self.get_fund(fund_id)
        if fund is None:
            return None
        return calculate_cumulative_performance(fund, self.list_cashflows(fund_id))

    def overview(self, reference_year: Optional[int] = None) -> Dict[str, Any]:
        """Overall metrics, vintage analysis and recent pacing across all funds."""
        funds = self.list_funds()
        records = self.list_cashflows()
        reference_year = reference_year or datetime.utcnow().year

        return {
            "overall": calculate_overall_metrics(funds, records),
            "vintages": calculate_vintage_analysis(funds, records),
            "pacing": calculate_pacing_metrics(records, reference_year, PACING_LOOKBACK_YEARS),
        }

    def cashflow_table(
        self,
        view: CashflowView = CashflowView.COMBINED,
        scenario_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return build_cashflow_table(self.list_funds(), self.list_cashflows(), get_scenario(scenario_id), view)

    def analyze_portfolio(self, portfolio_id: str) -> Optional[Dict[str, Any]]:
        """Waterfall for a portfolio's positions, or None for an unknown portfolio."""
        portfolio = self.get_portfolio(portfolio_id)
        if portfolio is None:
            logger.warning(f"Portfolio {portfolio_id} not found")
            return None

        positions = self.list_positions(portfolio_id)
        waterfall = build_portfolio_waterfall(positions, self.list_general_fund_cashflows())
        waterfall["portfolio_id"] = portfolio.id
        waterfall["portfolio_name"] = portfolio.name
        waterfall["total_size"] = portfolio.total_size
        return waterfall

    def export_portfolio(self, portfolio_id: str) -> str:
        portfolio = self.get_portfolio(portfolio_id)
        if portfolio is None:
            raise KeyError(f"Portfolio {portfolio_id} not found")
        return export_portfolio_cashflows(
            portfolio,
            self.list_positions(portfolio_id),
            self.list_general_funds(),
            self.list_general_fund_cashflows()
        )
