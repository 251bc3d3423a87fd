import pytest

from analysis.criteria import ScanCriteria, ScoreWeights
from analysis.scoring import (
    compute_delta_score, compute_liquidity_score, compute_scores, compute_trend_score, linear_score,
)


def test_linear_score_clamps():
    assert linear_score(16, 8, 24) == 50
    assert linear_score(4, 8, 24) == 0
    assert linear_score(40, 8, 24) == 100
    assert linear_score(5, 10, 10) == 0


@pytest.mark.parametrize('delta,expected', [
    (-0.23, 100),
    (-0.22, 100),
    (-0.25, 100),
    (-0.10, 40),
    (-0.28, 40),
    (-0.35, 0),
    (-0.01, 0),
])
def test_delta_score(delta, expected):
    assert compute_delta_score(delta) == pytest.approx(expected)


def test_liquidity_score_halves():
    assert compute_liquidity_score(500, 0.0) == 100
    assert compute_liquidity_score(250, 0.05) == pytest.approx(50)
    assert compute_liquidity_score(5000, 0.20) == 50


def test_liquidity_score_unknown_open_interest_earns_nothing():
    assert compute_liquidity_score(None, 0.0) == 50


def test_trend_score():
    assert compute_trend_score(110, 100) == pytest.approx(50)
    assert compute_trend_score(130, 100) == 100
    assert compute_trend_score(90, 100) == 0
    assert compute_trend_score(90, 0) == 0


def test_sweet_spot_contract_scores():
    scores = compute_scores(
        premium_yield=30.59, iv_rank=60, delta=-0.23, open_interest=600, spread_pct=0.0198,
        stock_price=104.9, sma200=94.95,
    )

    assert scores.delta_score == 100
    assert scores.yield_score == 100
    assert scores.iv_score == pytest.approx(80)
    assert 0 <= scores.composite_score <= 100


def test_composite_is_weighted_sum():
    scores = compute_scores(
        premium_yield=16, iv_rank=45, delta=-0.23, open_interest=500, spread_pct=0.0,
        stock_price=110, sma200=100,
    )

    assert scores.composite_score == pytest.approx(0.30 * 50 + 0.25 * 50 + 0.15 * 100 + 0.15 * 100 + 0.15 * 50)


def test_composite_stays_in_range():
    best = compute_scores(100, 100, -0.23, 10_000, 0.0, 200, 100)
    worst = compute_scores(0, 0, -0.50, None, 1.0, 90, 100)

    assert best.composite_score == pytest.approx(100)
    assert worst.composite_score == 0


def test_custom_weights_are_applied():
    criteria = ScanCriteria(weights=ScoreWeights(yield_=1.0, iv=0.0, delta=0.0, liquidity=0.0, trend=0.0))

    scores = compute_scores(16, 100, -0.23, 500, 0.0, 120, 100, criteria)

    assert scores.composite_score == pytest.approx(50)


def test_weights_must_sum_to_one():
    with pytest.raises(ValueError, match="sum to 1.0"):
        ScoreWeights(yield_=0.5)
