from datetime import date, timedelta

from data.models import (
    OptionContract, OptionGreeksSnapshot, OptionPriceSnapshot, OptionType, PriceBar,
)


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


def make_bars(closes, volume=2_000_000, end=date(2026, 2, 20)):
    """Daily bars oldest first, the last close on ``end``."""
    count = len(closes)
    return [
        PriceBar(date=end - timedelta(days=count - 1 - i), open=c, high=c, low=c, close=c, volume=volume)
        for i, c in enumerate(closes)
    ]


def make_greeks(ivs, delta=-0.23, theta=-0.05, end=date(2026, 2, 20)):
    """Greeks history, newest first."""
    return [
        OptionGreeksSnapshot(date=end - timedelta(days=i), delta=delta, gamma=0.02, theta=theta,
                             vega=0.1, rho=-0.01, implied_volatility=iv)
        for i, iv in enumerate(ivs)
    ]


def make_prices(close=2.20, volume=100, open_interest=600, day=date(2026, 2, 20)):
    return [OptionPriceSnapshot(date=day, open=close, high=close, low=close, close=close,
                                volume=volume, open_interest=open_interest)]


def make_put(strike, expiration, underlying='AAPL'):
    identifier = f"{underlying}{expiration:%y%m%d}P{int(strike * 1000):08d}"
    return OptionContract(identifier=identifier, underlying=underlying, strike=strike,
                          expiration=expiration, option_type=OptionType.PUT)
