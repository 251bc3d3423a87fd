"""
Composite scoring for CSP candidates that survived contract selection.

Each sub-score is clamped to [0, 100] and the composite is their weighted
sum, so the composite stays in [0, 100] as long as the weights sum to 1.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from analysis.criteria import ScanCriteria, DEFAULT_CRITERIA


@dataclass(frozen=True)
class Phase4Scores:
    yield_score: float
    iv_score: float
    delta_score: float
    liquidity_score: float
    trend_score: float
    composite_score: float


def linear_score(value: float, low: float, high: float) -> float:
    """Map ``value`` onto 0-100 between ``low`` and ``high``, clamped."""
    if high <= low:
        return 0.0
    return float(np.clip((value - low) / (high - low) * 100, 0.0, 100.0))


def compute_delta_score(delta: float, criteria: ScanCriteria = DEFAULT_CRITERIA) -> float:
    abs_delta = abs(delta)
    sweet_low = abs(criteria.delta_sweet_spot_max)
    sweet_high = abs(criteria.delta_sweet_spot_min)
    range_low = abs(criteria.target_max_delta)
    range_high = abs(criteria.target_min_delta)

    if sweet_low <= abs_delta <= sweet_high:
        return 100.0
    if abs_delta < range_low or abs_delta > range_high:
        return 0.0
    if abs_delta < sweet_low:
        return linear_score(abs_delta, range_low, sweet_low)
    return linear_score(range_high - abs_delta, 0.0, range_high - sweet_high)


def compute_liquidity_score(open_interest: Optional[int], spread_pct: float,
                            criteria: ScanCriteria = DEFAULT_CRITERIA) -> float:
    """Half open interest, half spread tightness.

    Unknown open interest earns nothing for its half.
    """
    if open_interest is None:
        oi_score = 0.0
    else:
        oi_score = min(100.0, open_interest / criteria.preferred_open_interest * 100)
    if spread_pct <= 0:
        spread_score = 100.0
    else:
        spread_score = max(0.0, 100 - spread_pct / criteria.max_spread_pct * 100)
    return oi_score * 0.5 + spread_score * 0.5


def compute_trend_score(price: float, sma200: float, criteria: ScanCriteria = DEFAULT_CRITERIA) -> float:
    if sma200 <= 0:
        return 0.0
    pct_above = (price - sma200) / sma200 * 100
    if pct_above <= 0:
        return 0.0
    return min(100.0, pct_above / criteria.max_trend_distance_pct * 100)


def compute_scores(premium_yield: float, iv_rank: float, delta: float,
                   open_interest: Optional[int], spread_pct: float,
                   stock_price: float, sma200: float,
                   criteria: ScanCriteria = DEFAULT_CRITERIA) -> Phase4Scores:
    """Score a selected contract. Higher composite ranks first."""
    weights = criteria.weights
    yield_score = linear_score(premium_yield, criteria.yield_range_min, criteria.yield_range_max)
    iv_score = linear_score(iv_rank, criteria.iv_rank_range_min, criteria.iv_rank_range_max)
    delta_score = compute_delta_score(delta, criteria)
    liquidity_score = compute_liquidity_score(open_interest, spread_pct, criteria)
    trend_score = compute_trend_score(stock_price, sma200, criteria)

    composite_score = (
        yield_score * weights.yield_
        + iv_score * weights.iv
        + delta_score * weights.delta
        + liquidity_score * weights.liquidity
        + trend_score * weights.trend
    )

    return Phase4Scores(
        yield_score=yield_score,
        iv_score=iv_score,
        delta_score=delta_score,
        liquidity_score=liquidity_score,
        trend_score=trend_score,
        composite_score=composite_score,
    )
