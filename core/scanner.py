import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List

from analysis.criteria import ScanCriteria, DEFAULT_CRITERIA
from analysis.scoring import compute_scores
from analysis.screens import (
    CandidateContract, compute_dte, run_phase1, run_phase2,
    select_best_contract, select_reference_contract,
)
from config import ConfigurationError
from core.portfolio import check_portfolio
from core.results import FullScanResult, ScanTickerResult
from data.data_sources import FinancialDataSource
from data.models import OptionType
from database.stores import PortfolioStore, ScanStore

logger = logging.getLogger(__name__)


class WatchlistScanner:
    """Five-phase cash-secured-put scan over a user's watchlist."""

    def __init__(self, data_source: FinancialDataSource, scan_store: ScanStore,
                 portfolio_store: PortfolioStore, criteria: ScanCriteria = DEFAULT_CRITERIA,
                 clock: Callable[[], datetime] = datetime.now):
        self.data_source = data_source
        self.scan_store = scan_store
        self.portfolio_store = portfolio_store
        self.criteria = criteria
        self.clock = clock

    def run_full_scan(self, user_id: str) -> FullScanResult:
        """Scan every watchlist ticker in order and replace the user's stored results."""
        self.data_source.validate_api_key()

        scan_date = self.clock()
        tickers = self.scan_store.load_watchlist(user_id)
        logger.info(f"Starting scan of {len(tickers)} tickers for user {user_id}")

        start_time = time.time()
        results: List[ScanTickerResult] = []

        # Sequential on purpose: every request shares one throttle
        for i, ticker in enumerate(tickers):
            logger.info(f"Scanning {ticker} ({i+1}/{len(tickers)})")
            try:
                result = self.scan_ticker(ticker, user_id)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.error(f"Error scanning {ticker}: {e}")
                result = ScanTickerResult(ticker=ticker, final_reason=f"Scan error: {e}")
            results.append(result)

        self.scan_store.replace_results(user_id, scan_date, results)

        scan = FullScanResult(scan_date=scan_date, results=results)
        execution_time = time.time() - start_time
        logger.info(f"Scan for user {user_id} completed in {execution_time:.2f}s")
        logger.info(f"Scanned: {scan.total_scanned}, Passed: {scan.total_passed}")
        return scan

    def scan_ticker(self, ticker: str, user_id: str) -> ScanTickerResult:
        """Run the phases for one ticker, stopping at the first failed gate."""
        fields: Dict[str, Any] = {}
        criteria = self.criteria
        now = self.clock()

        def stop(final_reason: str) -> ScanTickerResult:
            logger.info(f"{ticker}: {final_reason}")
            return ScanTickerResult(ticker=ticker, final_reason=final_reason, **fields)

        # Phase 1: Stock Universe Filter
        history = self.data_source.get_price_history(ticker)
        if not history.success:
            fields['phase1_reason'] = history.error
            return stop(f"Phase 1 failed: {history.error}")

        p1 = run_phase1(history.records, criteria)
        fields.update(
            stock_price=p1.stock_price,
            sma200=p1.sma200,
            sma50=p1.sma50,
            avg_volume=p1.avg_volume,
            trend_direction=p1.trend_direction,
            passed_phase1=p1.passed,
            phase1_reason=p1.reason,
        )
        if not p1.passed:
            return stop(f"Phase 1: {p1.reason}")

        # Phase 2: IV screen on the nearest out-of-the-money put
        chain = self.data_source.get_option_chain(ticker, min_dte=criteria.target_min_dte, today=now.date())
        if not chain.success:
            fields['phase2_reason'] = chain.error
            return stop(f"Phase 2 failed: {chain.error}")

        puts = [c for c in chain.contracts if c.option_type == OptionType.PUT]
        reference = select_reference_contract(puts, p1.stock_price)
        if reference is None:
            fields['phase2_reason'] = 'No OTM put contracts available'
            return stop('Phase 2: No OTM put contracts available')

        reference_greeks = self.data_source.get_option_greeks(reference.identifier)
        if not reference_greeks.success:
            fields['phase2_reason'] = reference_greeks.error
            return stop(f"Phase 2 failed: {reference_greeks.error}")

        p2 = run_phase2(reference_greeks.records, criteria)
        fields.update(
            current_iv=p2.current_iv,
            iv_high=p2.iv_high,
            iv_low=p2.iv_low,
            iv_rank=p2.iv_rank,
            passed_phase2=p2.passed,
            phase2_reason=p2.reason,
        )
        if not p2.passed:
            return stop(f"Phase 2: {p2.reason}")

        # Phase 3: Option Selection
        candidates, error = self._build_candidates(puts, now)
        if error:
            fields['phase3_reason'] = error
            return stop(f"Phase 3 failed: {error}")

        p3 = select_best_contract(candidates, now, criteria)
        fields.update(passed_phase3=p3.passed, phase3_reason=p3.reason)
        if not p3.passed:
            return stop(f"Phase 3: {p3.reason}")

        selected = p3.selected
        candidate = selected.candidate
        fields.update(
            contract_name=candidate.contract.identifier,
            strike=candidate.contract.strike,
            expiration=candidate.contract.expiration,
            dte=selected.dte,
            delta=candidate.greeks.delta,
            theta=candidate.greeks.theta,
            bid=candidate.bid,
            ask=candidate.ask,
            iv=candidate.greeks.implied_volatility,
            open_interest=candidate.open_interest,
            open_interest_missing=candidate.open_interest is None,
            option_volume=candidate.prices.volume,
            premium_yield=selected.premium_yield,
        )

        # Phase 4: Scoring
        scores = compute_scores(
            selected.premium_yield,
            p2.iv_rank,
            candidate.greeks.delta,
            candidate.open_interest,
            candidate.spread_pct,
            p1.stock_price,
            p1.sma200,
            criteria,
        )
        fields.update(
            yield_score=scores.yield_score,
            iv_score=scores.iv_score,
            delta_score=scores.delta_score,
            liquidity_score=scores.liquidity_score,
            trend_score=scores.trend_score,
            composite_score=scores.composite_score,
        )

        # Phase 5: Portfolio Checks
        portfolio = check_portfolio(self.portfolio_store, user_id, ticker)
        fields.update(
            has_open_csp=portfolio.has_open_csp,
            has_assigned_pos=portfolio.has_assigned_pos,
            portfolio_flag=portfolio.portfolio_flag,
        )

        logger.info(f"{ticker}: passed with {candidate.contract.identifier}, "
                    f"score {scores.composite_score:.1f}")
        return ScanTickerResult(ticker=ticker, passed=True, **fields)

    def _build_candidates(self, puts, now: datetime):
        """Fetch latest greeks and prices for every put inside the DTE window.

        Returns (candidates, error). Any failed fetch ends the ticker's scan.
        """
        criteria = self.criteria
        windowed = [
            c for c in puts
            if criteria.target_min_dte <= compute_dte(c.expiration, now) <= criteria.target_max_dte
        ]
        logger.info(f"Fetching greeks and prices for {len(windowed)} puts")

        candidates: List[CandidateContract] = []
        for contract in windowed:
            greeks = self.data_source.get_option_greeks(contract.identifier)
            if not greeks.success:
                return candidates, f"{contract.identifier}: {greeks.error}"

            prices = self.data_source.get_option_prices(contract.identifier)
            if not prices.success:
                return candidates, f"{contract.identifier}: {prices.error}"

            candidates.append(CandidateContract.from_history(contract, greeks.records, prices.records))

        return candidates, None
