import math
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Dict, List, Optional, Sequence

import pandas as pd

from analysis.criteria import ScanCriteria, DEFAULT_CRITERIA
from data.models import (
    OptionContract, OptionGreeksSnapshot, OptionPriceSnapshot, OptionType, PriceBar,
)

logger = logging.getLogger(__name__)

ASK_MARKUP = 1.02


# === Pure calculation helpers ===

def compute_sma(closes: Sequence[float], period: int) -> Optional[float]:
    """Mean of the first ``period`` closes (newest first), or None if too few."""
    if len(closes) < period:
        return None
    return sum(closes[:period]) / period


def compute_iv_rank(current_iv: float, low_iv: float, high_iv: float) -> float:
    if high_iv <= low_iv:
        return 0.0
    rank = (current_iv - low_iv) / (high_iv - low_iv) * 100
    return max(0.0, min(100.0, rank))


def compute_premium_yield(bid: float, strike: float, dte: int) -> float:
    """Annualized premium as a percent of the cash securing the put."""
    if strike <= 0 or dte <= 0:
        return 0.0
    return (bid / strike) * (365 / dte) * 100


def compute_dte(expiration: date, now: datetime) -> int:
    expires_at = datetime.combine(expiration, time.min, tzinfo=now.tzinfo)
    return math.ceil((expires_at - now).total_seconds() / 86400)


def estimate_ask(bid: float) -> float:
    """Ask estimate used until the vendor supplies real quotes."""
    return bid * ASK_MARKUP


def compute_spread_pct(bid: float, ask: float) -> float:
    """Bid/ask spread as a fraction of mid. 1.0 when there is no price."""
    mid = (bid + ask) / 2
    if mid <= 0:
        return 1.0
    return (ask - bid) / mid


def latest(snapshots: Sequence):
    """Most recent snapshot by date."""
    return max(snapshots, key=lambda s: s.date)


# === Phase 1: Stock Universe Filter ===

@dataclass
class Phase1Result:
    passed: bool
    stock_price: float
    sma200: Optional[float]
    sma50: Optional[float]
    avg_volume: float
    trend_direction: str
    reason: Optional[str] = None


def run_phase1(records: Sequence[PriceBar], criteria: ScanCriteria = DEFAULT_CRITERIA) -> Phase1Result:
    """Price band, liquidity and 200-day trend screen."""
    if not records:
        return Phase1Result(False, 0.0, None, None, 0.0, 'unknown', reason='No price data')

    df = pd.DataFrame([{'date': r.date, 'close': r.close, 'volume': r.volume} for r in records])
    df = df.sort_values('date', ascending=False)
    closes = df['close'].tolist()

    stock_price = float(closes[0])
    sma200 = compute_sma(closes, criteria.sma_period)
    sma50 = compute_sma(closes, criteria.sma_short_period)
    avg_volume = float(df['volume'].head(criteria.avg_volume_days).mean())

    def fail(reason: str, trend: str = 'unknown') -> Phase1Result:
        return Phase1Result(False, stock_price, sma200, sma50, avg_volume, trend, reason=reason)

    if stock_price < criteria.min_price or stock_price > criteria.max_price:
        return fail(f"Price ${stock_price:.2f} outside ${criteria.min_price:g}-${criteria.max_price:g} range")

    if avg_volume < criteria.min_avg_volume:
        return fail(f"Avg volume {round(avg_volume):,} below {criteria.min_avg_volume:,.0f} minimum")

    if sma200 is None:
        return fail(f"Insufficient data for {criteria.sma_period}-day SMA")

    if stock_price <= sma200:
        return fail(f"Price ${stock_price:.2f} below {criteria.sma_period}-day SMA ${sma200:.2f}", 'falling')

    trend_direction = trend_of(closes, sma200, criteria)
    if trend_direction == 'falling':
        return fail(f"{criteria.sma_period}-day SMA is falling", trend_direction)

    return Phase1Result(True, stock_price, sma200, sma50, avg_volume, trend_direction)


def trend_of(closes: Sequence[float], sma200: float, criteria: ScanCriteria) -> str:
    """Compare today's long SMA with the one ``sma_trend_lookback`` bars ago."""
    if len(closes) < criteria.sma_period + criteria.sma_trend_lookback:
        # Not enough history to compare; assume rising since price is above the SMA
        return 'rising'

    older_sma = compute_sma(closes[criteria.sma_trend_lookback:], criteria.sma_period)
    if sma200 > older_sma:
        return 'rising'
    if sma200 < older_sma:
        return 'falling'
    return 'flat'


# === Phase 2: Implied Volatility Screen ===

@dataclass
class Phase2Result:
    passed: bool
    current_iv: float
    iv_high: float
    iv_low: float
    iv_rank: float
    reason: Optional[str] = None


def select_reference_contract(contracts: Sequence[OptionContract],
                              stock_price: float) -> Optional[OptionContract]:
    """Put with the strike nearest the stock price among strikes at or below it."""
    otm_puts = [
        c for c in contracts
        if c.option_type == OptionType.PUT and c.strike <= stock_price
    ]
    if not otm_puts:
        return None
    return min(otm_puts, key=lambda c: abs(c.strike - stock_price))


def run_phase2(greeks_records: Sequence[OptionGreeksSnapshot],
               criteria: ScanCriteria = DEFAULT_CRITERIA) -> Phase2Result:
    """IV rank screen over one reference contract's greeks history."""
    if not greeks_records:
        return Phase2Result(False, 0.0, 0.0, 0.0, 0.0, reason='No IV data available')

    current_iv = latest(greeks_records).implied_volatility
    iv_values = [r.implied_volatility for r in greeks_records]
    iv_high = max(iv_values)
    iv_low = min(iv_values)
    iv_rank = compute_iv_rank(current_iv, iv_low, iv_high)

    if iv_rank < criteria.min_iv_rank:
        return Phase2Result(False, current_iv, iv_high, iv_low, iv_rank,
                            reason=f"IV Rank {iv_rank:.1f} below {criteria.min_iv_rank:g} minimum")

    return Phase2Result(True, current_iv, iv_high, iv_low, iv_rank)


# === Phase 3: Option Selection ===

@dataclass(frozen=True)
class CandidateContract:
    """A put joined with its latest greeks and price snapshot."""
    contract: OptionContract
    greeks: OptionGreeksSnapshot
    prices: OptionPriceSnapshot

    @classmethod
    def from_history(cls, contract: OptionContract,
                     greeks_records: Sequence[OptionGreeksSnapshot],
                     price_records: Sequence[OptionPriceSnapshot]) -> "CandidateContract":
        return cls(contract=contract, greeks=latest(greeks_records), prices=latest(price_records))

    @property
    def bid(self) -> float:
        # Last close stands in for the bid
        return self.prices.close

    @property
    def ask(self) -> float:
        return estimate_ask(self.bid)

    @property
    def spread_pct(self) -> float:
        return compute_spread_pct(self.bid, self.ask)

    @property
    def open_interest(self) -> Optional[int]:
        return self.prices.open_interest

    def dte(self, now: datetime) -> int:
        return compute_dte(self.contract.expiration, now)

    def premium_yield(self, now: datetime) -> float:
        return compute_premium_yield(self.bid, self.contract.strike, self.dte(now))


@dataclass
class SelectedContract:
    candidate: CandidateContract
    dte: int
    premium_yield: float


@dataclass
class Phase3Result:
    passed: bool
    selected: Optional[SelectedContract] = None
    reason: Optional[str] = None
    rejections: Dict[str, int] = field(default_factory=dict)
    open_interest_unknown: int = 0


def select_best_contract(candidates: Sequence[CandidateContract], now: datetime,
                         criteria: ScanCriteria = DEFAULT_CRITERIA) -> Phase3Result:
    """Apply the hard filters and pick the highest-yielding survivor."""
    rejections: Counter = Counter()
    open_interest_unknown = 0
    survivors: List[SelectedContract] = []

    for candidate in candidates:
        dte = candidate.dte(now)
        if dte < criteria.target_min_dte or dte > criteria.target_max_dte:
            rejections['dte'] += 1
            continue

        delta = candidate.greeks.delta
        if delta < criteria.target_min_delta or delta > criteria.target_max_delta:
            rejections['delta'] += 1
            continue

        if candidate.open_interest is None:
            open_interest_unknown += 1
        elif candidate.open_interest < criteria.min_open_interest:
            rejections['open_interest'] += 1
            continue

        if candidate.prices.volume < criteria.min_option_volume:
            rejections['volume'] += 1
            continue

        if candidate.spread_pct > criteria.max_spread_pct:
            rejections['spread'] += 1
            continue

        premium_yield = compute_premium_yield(candidate.bid, candidate.contract.strike, dte)
        if premium_yield < criteria.min_premium_yield:
            rejections['yield'] += 1
            continue

        survivors.append(SelectedContract(candidate=candidate, dte=dte, premium_yield=premium_yield))

    if open_interest_unknown:
        logger.info(f"{open_interest_unknown} candidate(s) missing open interest, liquidity filter skipped")

    if not survivors:
        reason = 'No contracts meet DTE/delta/yield/liquidity criteria'
        if rejections:
            tally = ', '.join(f"{name}: {count}" for name, count in sorted(rejections.items()))
            reason = f"{reason} ({tally})"
        return Phase3Result(False, reason=reason, rejections=dict(rejections),
                            open_interest_unknown=open_interest_unknown)

    survivors.sort(key=lambda s: s.premium_yield, reverse=True)
    return Phase3Result(True, selected=survivors[0], rejections=dict(rejections),
                        open_interest_unknown=open_interest_unknown)
