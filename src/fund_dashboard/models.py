"""
Record shapes for the Fund Portfolio Dashboard.

These are the plain records the engines consume. They carry no behaviour
beyond dictionary conversion; all derived values are computed by the engines.
"""

from dataclasses import dataclass, field, fields, asdict
from datetime import datetime
from typing import List, Optional, Dict, Any


def _timestamp() -> str:
    return datetime.utcnow().isoformat()


class RecordMixin:
    """Dictionary conversion shared by all persisted records."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Build a record from a dictionary, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


# ==============================================================================
# FUNDS WITH COMMITMENTS
# ==============================================================================

@dataclass
class Fund(RecordMixin):
    """A fund the investor has committed a fixed amount to."""
    id: str
    name: str
    vintage: int
    commitment_amount: float
    fund_type: str
    management_fee_rate: Optional[float] = None
    carried_interest_rate: Optional[float] = None
    tax_rate: Optional[float] = None
    created_at: str = field(default_factory=_timestamp)
    updated_at: str = field(default_factory=_timestamp)
    user_id: str = ""


@dataclass
class CashflowRecord(RecordMixin):
    """One reported period of a fund: calls, distributions and NAV."""
    id: str
    fund_id: str
    year: int
    quarter: int
    calls: float = 0.0
    distributions: float = 0.0
    nav: float = 0.0
    management_fees: Optional[float] = None
    carried_interest: Optional[float] = None
    taxes: Optional[float] = None
    created_at: str = field(default_factory=_timestamp)
    updated_at: str = field(default_factory=_timestamp)
    user_id: str = ""

    @property
    def period_key(self):
        """(year, quarter) tuple that orders records chronologically."""
        return (self.year, self.quarter)


# ==============================================================================
# REFERENCE DATA
# ==============================================================================

@dataclass(frozen=True)
class FundTypeExpectation:
    """Historical lifecycle pattern for a fund type, indexed by year of life."""
    fund_type: str
    avg_lifespan: int
    call_pattern: List[float]
    distribution_pattern: List[float]
    nav_pattern: List[float]
    avg_multiple: float
    avg_irr: float
    management_fee_pattern: List[float] = field(default_factory=list)
    carried_interest_pattern: List[float] = field(default_factory=list)

    def validate(self) -> List[str]:
        """Return the names of patterns whose length differs from avg_lifespan."""
        issues = []
        patterns = {
            "call_pattern": self.call_pattern,
            "distribution_pattern": self.distribution_pattern,
            "nav_pattern": self.nav_pattern,
            "management_fee_pattern": self.management_fee_pattern,
            "carried_interest_pattern": self.carried_interest_pattern,
        }
        for name, pattern in patterns.items():
            if pattern and len(pattern) != self.avg_lifespan:
                issues.append(name)
        return issues


@dataclass(frozen=True)
class PortfolioScenario:
    """Scalar applied to projected distributions and NAV."""
    id: str
    name: str
    multiplier: float
    description: str = ""


# ==============================================================================
# GENERAL FUNDS (PERCENTAGE BASED, NO COMMITMENT)
# ==============================================================================

@dataclass
class GeneralFund(RecordMixin):
    """Fund characteristics without a commitment amount."""
    id: str
    name: str
    vintage: int
    fund_type: str
    strategy: str = ""
    geography: str = ""
    expected_lifespan: int = 10
    management_fee_rate: Optional[float] = None
    carried_interest_rate: Optional[float] = None
    description: Optional[str] = None
    created_at: str = field(default_factory=_timestamp)
    updated_at: str = field(default_factory=_timestamp)
    user_id: str = ""


@dataclass
class GeneralFundNetCashflow(RecordMixin):
    """
    Yearly cashflow of a general fund as fractions of commitment.

    contributions_percentage is negative or zero, distributions_percentage is
    positive or zero.
    """
    id: str
    fund_id: str
    year: int
    net_cashflow_percentage: float = 0.0
    contributions_percentage: float = 0.0
    distributions_percentage: float = 0.0
    nav_percentage: float = 0.0
    created_at: str = field(default_factory=_timestamp)
    updated_at: str = field(default_factory=_timestamp)
    user_id: str = ""


@dataclass
class FundCashflowTemplate(RecordMixin):
    """Net cashflow fraction for a 1-based year of fund life."""
    id: str
    fund_id: str
    year: int
    net_cashflow_percentage: float
    created_at: str = field(default_factory=_timestamp)
    updated_at: str = field(default_factory=_timestamp)
    user_id: str = ""


# ==============================================================================
# PORTFOLIOS
# ==============================================================================

@dataclass
class Portfolio(RecordMixin):
    id: str
    name: str
    total_size: float
    description: Optional[str] = None
    client_id: Optional[str] = None
    created_at: str = field(default_factory=_timestamp)
    updated_at: str = field(default_factory=_timestamp)
    user_id: str = ""


@dataclass
class PortfolioPosition(RecordMixin):
    """Binds a dollar commitment to a general fund within a portfolio."""
    id: str
    portfolio_id: str
    fund_id: str
    commitment_amount: float
    allocation_percentage: float = 0.0
    created_at: str = field(default_factory=_timestamp)
    updated_at: str = field(default_factory=_timestamp)
    user_id: str = ""


# ==============================================================================
# DERIVED
# ==============================================================================

@dataclass
class WaterfallYear:
    """One calendar year of an aggregated portfolio waterfall."""
    year: int
    contributions: float
    distributions: float
    net_cashflow: float
    cumulative_net: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
