#!/usr/bin/env python3
"""
Data models for stock and options market data.

Domain records use canonical field names. Vendor payloads are parsed into
explicit wire records first and then translated field by field, so vendor
naming never leaks past this module.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


def _parse_date(value: str) -> date:
    return datetime.strptime(value[:10], '%Y-%m-%d').date()


class OptionType(str, Enum):
    """Option contract type, cased as the vendor sends it."""
    PUT = "Put"
    CALL = "Call"


@dataclass(frozen=True)
class PriceBar:
    """One trading day for a ticker."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int

    @classmethod
    def from_json(cls, raw: dict) -> "PriceBar":
        return cls(
            date=_parse_date(raw['date']),
            open=float(raw['open']),
            high=float(raw['high']),
            low=float(raw['low']),
            close=float(raw['close']),
            volume=int(raw['volume']),
        )


@dataclass(frozen=True)
class OptionContract:
    """One listed option contract. Identity is the identifier."""
    identifier: str
    underlying: str
    strike: float
    expiration: date
    option_type: OptionType


@dataclass(frozen=True)
class OptionGreeksSnapshot:
    """Greeks for one contract on one date."""
    date: date
    delta: float
    gamma: float
    theta: float
    vega: float
    rho: float
    implied_volatility: float

    @classmethod
    def from_json(cls, raw: dict) -> "OptionGreeksSnapshot":
        return cls(
            date=_parse_date(raw['date']),
            delta=float(raw['delta']),
            gamma=float(raw['gamma']),
            theta=float(raw['theta']),
            vega=float(raw['vega']),
            rho=float(raw['rho']),
            implied_volatility=float(raw['implied_volatility']),
        )


@dataclass(frozen=True)
class OptionPriceSnapshot:
    """OHLCV for one contract on one date.

    ``open_interest`` is None when the vendor omitted it. That is a data
    quality signal and is kept distinct from a genuine zero.
    """
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int
    open_interest: Optional[int] = None

    @classmethod
    def from_json(cls, raw: dict) -> "OptionPriceSnapshot":
        open_interest = raw.get('open_interest')
        return cls(
            date=_parse_date(raw['date']),
            open=float(raw['open']),
            high=float(raw['high']),
            low=float(raw['low']),
            close=float(raw['close']),
            volume=int(raw['volume']),
            open_interest=int(open_interest) if open_interest is not None else None,
        )


@dataclass(frozen=True)
class ChainRecordWire:
    """Option-chain record exactly as the vendor names it."""
    contract_name: str
    trading_symbol: str
    expiration_date: date
    put_or_call: str
    strike_price: float

    @classmethod
    def from_json(cls, raw: dict) -> "ChainRecordWire":
        return cls(
            contract_name=str(raw['contract_name']),
            trading_symbol=str(raw.get('trading_symbol') or ''),
            expiration_date=_parse_date(raw['expiration_date']),
            put_or_call=str(raw['put_or_call']),
            strike_price=float(raw['strike_price']),
        )


def contract_from_wire(wire: ChainRecordWire, underlying: str) -> OptionContract:
    """Translate a vendor chain record into the canonical contract shape."""
    return OptionContract(
        identifier=wire.contract_name,
        underlying=wire.trading_symbol or underlying,
        strike=wire.strike_price,
        expiration=wire.expiration_date,
        option_type=OptionType(wire.put_or_call.strip().capitalize()),
    )


@dataclass
class FetchResult:
    """Outcome of a single-page vendor fetch."""
    identifier: str
    records: List = field(default_factory=list)
    success: bool = False
    error: Optional[str] = None


@dataclass
class OptionChainResult:
    """Outcome of a paginated option-chain fetch."""
    ticker: str
    contracts: List[OptionContract] = field(default_factory=list)
    success: bool = False
    error: Optional[str] = None
    pages_fetched: int = 0
