from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, Boolean,
    UniqueConstraint, Index, Text, Numeric
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class WatchlistTicker(Base):
    """Tickers a user wants scanned."""
    __tablename__ = "watchlist_tickers"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    ticker = Column(String(10), nullable=False)
    notes = Column(String(500))
    added_at = Column(DateTime, server_default=func.now(), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'ticker', name='uq_watchlist_user_ticker'),
        Index('idx_watchlist_user', 'user_id'),
    )


class ScanResult(Base):
    """One ticker's outcome for the latest scan run of a user."""
    __tablename__ = "scan_results"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    scan_date = Column(DateTime, nullable=False)
    ticker = Column(String(10), nullable=False)

    # Phase 1
    stock_price = Column(Numeric(10, 2, asdecimal=False))
    sma200 = Column(Numeric(10, 2, asdecimal=False))
    sma50 = Column(Numeric(10, 2, asdecimal=False))
    avg_volume = Column(Numeric(15, 0, asdecimal=False))
    trend_direction = Column(String(10))
    passed_phase1 = Column(Boolean, default=False, nullable=False)
    phase1_reason = Column(Text)

    # Phase 2
    current_iv = Column(Float)
    iv_high = Column(Float)
    iv_low = Column(Float)
    iv_rank = Column(Float)
    passed_phase2 = Column(Boolean, default=False, nullable=False)
    phase2_reason = Column(Text)

    # Phase 3
    contract_name = Column(String(50))
    strike = Column(Numeric(10, 2, asdecimal=False))
    expiration = Column(Date)
    dte = Column(Integer)
    delta = Column(Float)
    theta = Column(Float)
    bid = Column(Numeric(10, 4, asdecimal=False))
    ask = Column(Numeric(10, 4, asdecimal=False))
    iv = Column(Float)
    open_interest = Column(Integer)
    open_interest_missing = Column(Boolean, default=False, nullable=False)
    option_volume = Column(Integer)
    premium_yield = Column(Float)
    passed_phase3 = Column(Boolean, default=False, nullable=False)
    phase3_reason = Column(Text)

    # Phase 4
    yield_score = Column(Float)
    iv_score = Column(Float)
    delta_score = Column(Float)
    liquidity_score = Column(Float)
    trend_score = Column(Float)
    composite_score = Column(Float)

    # Phase 5
    has_open_csp = Column(Boolean, default=False, nullable=False)
    has_assigned_pos = Column(Boolean, default=False, nullable=False)
    portfolio_flag = Column(Text)

    # Overall
    passed = Column(Boolean, default=False, nullable=False)
    final_reason = Column(Text)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_scan_user_date', 'user_id', 'scan_date'),
        Index('idx_scan_user_date_passed', 'user_id', 'scan_date', 'passed'),
        Index('idx_scan_composite', 'composite_score'),
    )


class Trade(Base):
    """Option trades. Read-only here: the scanner only checks for open short puts."""
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    ticker = Column(String(10), nullable=False)
    type = Column(String(4), nullable=False)  # PUT or CALL
    action = Column(String(20), nullable=False)  # SELL_TO_OPEN, BUY_TO_CLOSE, ...
    status = Column(String(10), nullable=False, default="OPEN")
    strike = Column(Numeric(10, 2, asdecimal=False))
    expiration = Column(Date)

    __table_args__ = (
        Index('idx_trade_user_ticker_status', 'user_id', 'ticker', 'status'),
    )


class Position(Base):
    """Stock positions, typically from put assignment. Read-only here."""
    __tablename__ = "positions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    ticker = Column(String(10), nullable=False)
    status = Column(String(10), nullable=False, default="OPEN")
    cost_basis = Column(Numeric(12, 2, asdecimal=False))

    __table_args__ = (
        Index('idx_position_user_ticker_status', 'user_id', 'ticker', 'status'),
    )
