from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional


@dataclass(frozen=True)
class ScanTickerResult:
    """Result of scanning one ticker, with provenance for every phase."""
    ticker: str

    # Phase 1: stock universe
    passed_phase1: bool = False
    phase1_reason: Optional[str] = None
    stock_price: Optional[float] = None
    sma200: Optional[float] = None
    sma50: Optional[float] = None
    avg_volume: Optional[float] = None
    trend_direction: Optional[str] = None

    # Phase 2: implied volatility
    passed_phase2: bool = False
    phase2_reason: Optional[str] = None
    current_iv: Optional[float] = None
    iv_high: Optional[float] = None
    iv_low: Optional[float] = None
    iv_rank: Optional[float] = None

    # Phase 3: contract selection
    passed_phase3: bool = False
    phase3_reason: Optional[str] = None
    contract_name: Optional[str] = None
    strike: Optional[float] = None
    expiration: Optional[date] = None
    dte: Optional[int] = None
    delta: Optional[float] = None
    theta: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    iv: Optional[float] = None
    open_interest: Optional[int] = None
    open_interest_missing: bool = False
    option_volume: Optional[int] = None
    premium_yield: Optional[float] = None

    # Phase 4: scoring
    yield_score: Optional[float] = None
    iv_score: Optional[float] = None
    delta_score: Optional[float] = None
    liquidity_score: Optional[float] = None
    trend_score: Optional[float] = None
    composite_score: Optional[float] = None

    # Phase 5: portfolio conflicts
    has_open_csp: bool = False
    has_assigned_pos: bool = False
    portfolio_flag: Optional[str] = None

    passed: bool = False
    final_reason: Optional[str] = None


@dataclass(frozen=True)
class FullScanResult:
    """Outcome of scanning a user's whole watchlist."""
    scan_date: datetime
    results: List[ScanTickerResult] = field(default_factory=list)

    @property
    def total_scanned(self) -> int:
        return len(self.results)

    @property
    def total_passed(self) -> int:
        return sum(1 for r in self.results if r.passed)
