"""
Screening thresholds and scoring weights for the CSP scanner.
"""

from dataclasses import dataclass, field
import math


@dataclass(frozen=True)
class ScoreWeights:
    """Weights for the composite score. Must sum to 1.0."""
    yield_: float = 0.30
    iv: float = 0.25
    delta: float = 0.15
    liquidity: float = 0.15
    trend: float = 0.15

    def __post_init__(self):
        total = self.yield_ + self.iv + self.delta + self.liquidity + self.trend
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Score weights must sum to 1.0, got {total:.4f}")


@dataclass(frozen=True)
class ScanCriteria:
    """All thresholds used by the five scan phases."""

    # Phase 1: Stock Universe Filter
    min_price: float = 13.0
    max_price: float = 150.0
    min_avg_volume: float = 1_000_000
    avg_volume_days: int = 20
    sma_period: int = 200
    sma_short_period: int = 50
    sma_trend_lookback: int = 20

    # Phase 2: Implied Volatility Screen
    min_iv_rank: float = 20.0

    # Phase 3: Option Selection
    target_min_dte: int = 5
    target_max_dte: int = 45
    target_min_delta: float = -0.30
    target_max_delta: float = -0.02
    delta_sweet_spot_min: float = -0.25
    delta_sweet_spot_max: float = -0.22
    min_premium_yield: float = 8.0
    min_open_interest: int = 0
    min_option_volume: int = 20
    max_spread_pct: float = 0.10  # fraction of mid

    # Phase 4: Scoring
    weights: ScoreWeights = field(default_factory=ScoreWeights)
    yield_range_min: float = 8.0
    yield_range_max: float = 24.0
    iv_rank_range_min: float = 20.0
    iv_rank_range_max: float = 70.0
    max_trend_distance_pct: float = 20.0
    preferred_open_interest: int = 500


DEFAULT_CRITERIA = ScanCriteria()
