#!/usr/bin/env python3
"""
CSP Scanner Runner Script
Nightly entry point: scans every user's watchlist for cash-secured-put candidates.
"""

import logging
import sys
from datetime import datetime, date
from pathlib import Path
from typing import Optional
import pytz
import pandas as pd

from config import config, ConfigurationError
from core.scanner import WatchlistScanner
from data.data_sources import FinancialDataSource
from database.connection import DatabaseManager
from database.stores import PortfolioStore, ScanStore, WatchlistError
from utils.rate_limiter import RequestThrottle

logger = logging.getLogger(__name__)

project_root = Path(__file__).parent


def configure_logging(level: int = logging.INFO):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('csp_scanner.log'),
            logging.StreamHandler(sys.stdout)
        ]
    )


def check_market_holidays(target_date: date, holidays_file: Optional[Path] = None) -> bool:
    """Check if the target date is a market holiday."""
    holidays_file = holidays_file or project_root / config.MARKET_HOLIDAYS_FILE
    try:
        if holidays_file.exists():
            holidays_df = pd.read_csv(holidays_file)
            holiday_dates = set(pd.to_datetime(holidays_df['date']).dt.date)
            if target_date.year not in {d.year for d in holiday_dates}:
                logger.warning(f"Market holidays file has no dates for {target_date.year}, "
                               f"holidays will not be skipped")
            return target_date in holiday_dates
        else:
            logger.warning("Market holidays file not found, skipping holiday check")
            return False
    except Exception as e:
        logger.error(f"Error checking market holidays: {e}")
        return False


def is_trading_day(target_date: date, holidays_file: Optional[Path] = None) -> bool:
    if target_date.weekday() >= 5:  # Saturday = 5, Sunday = 6
        logger.info(f"Target date ({target_date}) is a weekend. Markets are closed.")
        return False
    if check_market_holidays(target_date, holidays_file):
        logger.info(f"Target date ({target_date}) is a US market holiday. Markets are closed.")
        return False
    return True


def build_scanner(db: DatabaseManager) -> WatchlistScanner:
    """Wire the scanner. The throttle is shared by every request of this process."""
    throttle = RequestThrottle(
        max_requests=config.MAX_REQUESTS_PER_MINUTE,
        window_seconds=60.0,
        min_interval_seconds=config.MIN_REQUEST_INTERVAL,
    )
    data_source = FinancialDataSource(throttle)
    return WatchlistScanner(
        data_source=data_source,
        scan_store=ScanStore(db),
        portfolio_store=PortfolioStore(db),
        criteria=config.scan_criteria(),
    )


def test_connections(db: DatabaseManager, throttle: Optional[RequestThrottle] = None) -> bool:
    """Test database connectivity and report throttle status."""
    logger.info("Testing system connections...")

    if not db.test_connection():
        logger.error("Database connection failed")
        return False

    if throttle is not None:
        status = throttle.get_status()
        logger.info(f"Rate limiting status: {status['current_requests']}/{status['rate_limit']} requests, "
                    f"{status['queue_length']} queued")

    logger.info("All connection tests completed")
    return True


def run_scans(scanner: WatchlistScanner, scan_store: ScanStore, user_id: Optional[str] = None) -> int:
    """Scan one user, or every user with a watchlist. Returns the number of users scanned."""
    users = [user_id] if user_id else scan_store.users_with_watchlists()
    if not users:
        logger.info("No users with watchlists, exiting")
        return 0

    for user in users:
        logger.info(f"Scanning for user {user}")
        result = scanner.run_full_scan(user)
        logger.info(f"User {user}: {result.total_scanned} scanned, {result.total_passed} candidates")

    return len(users)


def print_results(scan_store: ScanStore, user_id: str):
    metadata = scan_store.scan_metadata(user_id)
    if metadata.last_scan_date is None:
        print(f"No scan results for {user_id}")
        return

    print(f"Last scan: {metadata.last_scan_date:%Y-%m-%d %H:%M} | scanned {metadata.total_scanned} | "
          f"phase 1 {metadata.passed_phase1} | phase 2 {metadata.passed_phase2} | "
          f"phase 3 {metadata.passed_phase3} | passed {metadata.total_passed}")
    for row in scan_store.latest_results(user_id):
        if row['passed']:
            line = (f"  {row['ticker']:<6} {row['contract_name']} score {row['composite_score']:.1f} "
                    f"yield {row['premium_yield']:.1f}% dte {row['dte']}")
            if row['portfolio_flag']:
                line += f" [{row['portfolio_flag']}]"
        else:
            line = f"  {row['ticker']:<6} {row['final_reason']}"
        print(line)


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description='Cash-secured put watchlist scanner')
    parser.add_argument('--user', type=str, help='Scan or manage a single user')
    parser.add_argument('--init-db', action='store_true', help='Create database tables')
    parser.add_argument('--add', type=str, metavar='TICKER', help='Add a ticker to the user watchlist')
    parser.add_argument('--notes', type=str, help='Notes for --add')
    parser.add_argument('--remove', type=str, metavar='TICKER', help='Remove a ticker from the user watchlist')
    parser.add_argument('--results', action='store_true', help='Show the latest scan results for the user')
    parser.add_argument('--force', action='store_true', help='Scan even on weekends and market holidays')
    args = parser.parse_args()

    configure_logging()

    try:
        db = DatabaseManager()
        if args.init_db:
            db.create_tables()

        scan_store = ScanStore(db)

        if args.add or args.remove or args.results:
            if not args.user:
                parser.error("--add, --remove and --results require --user")
            if args.add:
                scan_store.add_ticker(args.user, args.add, args.notes)
            if args.remove and not scan_store.remove_ticker(args.user, args.remove):
                logger.warning(f"{args.remove.upper()} was not on the watchlist for {args.user}")
            if args.results:
                print_results(scan_store, args.user)
            return

        if args.init_db and not args.user:
            return

        today = datetime.now(pytz.timezone('US/Eastern')).date()
        if not args.force and not is_trading_day(today):
            return

        logger.info("CSP scanner starting...")

        # Validate configuration
        if not config.validate():
            logger.error("Configuration validation failed")
            sys.exit(1)

        scanner = build_scanner(db)
        if not test_connections(db, scanner.data_source.throttle):
            logger.error("Connection tests failed")
            sys.exit(1)

        run_scans(scanner, scan_store, args.user)
        logger.info("Scan complete")

    except WatchlistError as e:
        logger.error(str(e))
        sys.exit(2)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
