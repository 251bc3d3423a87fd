import re
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func

from core.results import ScanTickerResult
from database.connection import DatabaseManager
from database.models import Position, ScanResult, Trade, WatchlistTicker

logger = logging.getLogger(__name__)

TICKER_PATTERN = re.compile(r'^[A-Z]{1,5}$')
MAX_NOTES_LENGTH = 500


class WatchlistError(ValueError):
    """Invalid or duplicate watchlist edit."""


@dataclass
class ScanMetadata:
    """Summary counts for a user's latest scan."""
    last_scan_date: Optional[datetime] = None
    total_scanned: int = 0
    passed_phase1: int = 0
    passed_phase2: int = 0
    passed_phase3: int = 0
    total_passed: int = 0


class ScanStore:
    """Watchlists and scan results, one latest scan per user."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def load_watchlist(self, user_id: str) -> List[str]:
        """Tickers for a user in the order they were added."""
        with self.db.get_session() as session:
            rows = session.query(WatchlistTicker.ticker).filter_by(user_id=user_id).order_by(
                WatchlistTicker.added_at, WatchlistTicker.id
            ).all()
            return [row.ticker for row in rows]

    def users_with_watchlists(self) -> List[str]:
        with self.db.get_session() as session:
            rows = session.query(WatchlistTicker.user_id).distinct().order_by(WatchlistTicker.user_id).all()
            return [row.user_id for row in rows]

    def add_ticker(self, user_id: str, ticker: str, notes: Optional[str] = None) -> str:
        """Add a ticker to a user's watchlist. Returns the normalized ticker."""
        ticker = (ticker or '').strip().upper()
        if not TICKER_PATTERN.match(ticker):
            raise WatchlistError(f"Invalid ticker '{ticker}': 1-5 letters only")
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise WatchlistError(f"Notes must be at most {MAX_NOTES_LENGTH} characters")

        with self.db.get_session() as session:
            existing = session.query(WatchlistTicker).filter_by(user_id=user_id, ticker=ticker).first()
            if existing:
                raise WatchlistError(f"{ticker} is already in your watchlist")
            session.add(WatchlistTicker(user_id=user_id, ticker=ticker, notes=notes))

        logger.info(f"Added {ticker} to watchlist for user {user_id}")
        return ticker

    def remove_ticker(self, user_id: str, ticker: str) -> bool:
        ticker = (ticker or '').strip().upper()
        with self.db.get_session() as session:
            deleted = session.query(WatchlistTicker).filter_by(user_id=user_id, ticker=ticker).delete()
        if deleted:
            logger.info(f"Removed {ticker} from watchlist for user {user_id}")
        return bool(deleted)

    def replace_results(self, user_id: str, scan_date: datetime,
                        results: Sequence[ScanTickerResult]) -> int:
        """Replace every stored result for the user with this scan's results.

        Delete and insert share one transaction, so a failed write leaves the
        previous scan in place.
        """
        with self.db.get_session() as session:
            deleted = session.query(ScanResult).filter_by(user_id=user_id).delete()
            session.add_all([
                ScanResult(user_id=user_id, scan_date=scan_date, **asdict(result))
                for result in results
            ])
        logger.info(f"Stored {len(results)} scan results for user {user_id} (replaced {deleted})")
        return len(results)

    def latest_results(self, user_id: str) -> List[Dict]:
        """Latest scan rows, passing candidates first, best composite score first."""
        with self.db.get_session() as session:
            rows = session.query(ScanResult).filter_by(user_id=user_id).order_by(
                ScanResult.passed.desc(),
                ScanResult.composite_score.is_(None),
                ScanResult.composite_score.desc(),
                ScanResult.ticker,
            ).all()
            return [self._row_to_dict(row) for row in rows]

    def scan_metadata(self, user_id: str) -> ScanMetadata:
        with self.db.get_session() as session:
            last_scan_date = session.query(func.max(ScanResult.scan_date)).filter(
                ScanResult.user_id == user_id
            ).scalar()
            if last_scan_date is None:
                return ScanMetadata()

            query = session.query(ScanResult).filter_by(user_id=user_id, scan_date=last_scan_date)
            return ScanMetadata(
                last_scan_date=last_scan_date,
                total_scanned=query.count(),
                passed_phase1=query.filter(ScanResult.passed_phase1.is_(True)).count(),
                passed_phase2=query.filter(ScanResult.passed_phase2.is_(True)).count(),
                passed_phase3=query.filter(ScanResult.passed_phase3.is_(True)).count(),
                total_passed=query.filter(ScanResult.passed.is_(True)).count(),
            )

    @staticmethod
    def _row_to_dict(row: ScanResult) -> Dict:
        return {column.name: getattr(row, column.name) for column in ScanResult.__table__.columns}


class PortfolioStore:
    """Read-only lookups against the user's trades and positions."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def has_open_csp(self, user_id: str, ticker: str) -> bool:
        with self.db.get_session() as session:
            trade = session.query(Trade.id).filter_by(
                user_id=user_id,
                ticker=ticker,
                type='PUT',
                action='SELL_TO_OPEN',
                status='OPEN',
            ).first()
            return trade is not None

    def has_open_position(self, user_id: str, ticker: str) -> bool:
        with self.db.get_session() as session:
            position = session.query(Position.id).filter_by(
                user_id=user_id,
                ticker=ticker,
                status='OPEN',
            ).first()
            return position is not None
