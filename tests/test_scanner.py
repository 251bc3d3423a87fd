from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from config import ConfigurationError
from core.portfolio import ASSIGNED_SHARES_FLAG
from core.scanner import WatchlistScanner
from data.models import FetchResult, OptionChainResult, OptionContract, OptionType
from factories import make_bars, make_greeks, make_prices, make_put

NOW = datetime(2026, 2, 20, 16, 0)
EXPIRY_35 = date(2026, 3, 27)


def failed(identifier, error=None):
    return FetchResult(identifier=identifier, error=error or f"No data found for identifier: {identifier}")


def ok(identifier, records):
    return FetchResult(identifier=identifier, records=records, success=True)


def rising_history(ticker='AAPL'):
    return ok(ticker, make_bars([80.0 + 0.1 * i for i in range(250)]))


def make_scanner(data_source, scan_store=None, portfolio_store=None):
    if portfolio_store is None:
        portfolio_store = MagicMock()
        portfolio_store.has_open_csp.return_value = False
        portfolio_store.has_open_position.return_value = False
    return WatchlistScanner(
        data_source=data_source,
        scan_store=scan_store or MagicMock(),
        portfolio_store=portfolio_store,
        clock=lambda: NOW,
    )


def passing_data_source():
    put = make_put(100.0, EXPIRY_35)
    call = OptionContract('AAPL260327C00110000', 'AAPL', 110.0, EXPIRY_35, OptionType.CALL)
    data_source = MagicMock()
    data_source.get_price_history.return_value = rising_history()
    data_source.get_option_chain.return_value = OptionChainResult(
        ticker='AAPL', contracts=[call, put], success=True, pages_fetched=1
    )
    data_source.get_option_greeks.return_value = ok(put.identifier, make_greeks([0.35, 0.45, 0.20]))
    data_source.get_option_prices.return_value = ok(put.identifier, make_prices(close=2.20, open_interest=600))
    return data_source, put


def test_failed_price_history_for_every_ticker():
    data_source = MagicMock()
    data_source.get_price_history.side_effect = lambda ticker: failed(ticker)
    scan_store = MagicMock()
    scan_store.load_watchlist.return_value = ['AAPL', 'MSFT']

    scan = make_scanner(data_source, scan_store).run_full_scan('u1')

    assert scan.total_scanned == 2
    assert scan.total_passed == 0
    scan_store.replace_results.assert_called_once()
    user_id, scan_date, rows = scan_store.replace_results.call_args[0]
    assert user_id == 'u1'
    assert scan_date == NOW
    assert len(rows) == 2
    assert rows[0].final_reason == "Phase 1 failed: No data found for identifier: AAPL"
    assert rows[1].phase1_reason == "No data found for identifier: MSFT"
    assert not any(row.passed_phase1 for row in rows)


def test_missing_api_key_aborts_before_scanning():
    data_source = MagicMock()
    data_source.validate_api_key.side_effect = ConfigurationError("FINANCIAL_DATA_API_KEY is not configured")
    scan_store = MagicMock()

    with pytest.raises(ConfigurationError):
        make_scanner(data_source, scan_store).run_full_scan('u1')

    scan_store.load_watchlist.assert_not_called()
    scan_store.replace_results.assert_not_called()


def test_configuration_error_mid_scan_propagates():
    data_source = MagicMock()
    data_source.get_price_history.side_effect = ConfigurationError("key revoked")
    scan_store = MagicMock()
    scan_store.load_watchlist.return_value = ['AAPL']

    with pytest.raises(ConfigurationError, match="key revoked"):
        make_scanner(data_source, scan_store).run_full_scan('u1')
    scan_store.replace_results.assert_not_called()


def test_unexpected_error_becomes_scan_error_row():
    data_source = MagicMock()
    data_source.get_price_history.side_effect = [RuntimeError("boom"), failed('MSFT')]
    scan_store = MagicMock()
    scan_store.load_watchlist.return_value = ['AAPL', 'MSFT']

    scan = make_scanner(data_source, scan_store).run_full_scan('u1')

    assert [r.final_reason for r in scan.results] == [
        "Scan error: boom",
        "Phase 1 failed: No data found for identifier: MSFT",
    ]
    assert not scan.results[0].passed_phase1


def test_phase1_rejection_skips_option_requests():
    data_source = MagicMock()
    data_source.get_price_history.return_value = ok('PENNY', make_bars([5.0] * 250))

    result = make_scanner(data_source).scan_ticker('PENNY', 'u1')

    assert not result.passed
    assert result.final_reason == "Phase 1: Price $5.00 outside $13-$150 range"
    assert result.stock_price == 5.0
    data_source.get_option_chain.assert_not_called()


def test_chain_failure_stops_at_phase2():
    data_source = MagicMock()
    data_source.get_price_history.return_value = rising_history()
    data_source.get_option_chain.return_value = OptionChainResult(
        ticker='AAPL', error="No option chain data for AAPL"
    )

    result = make_scanner(data_source).scan_ticker('AAPL', 'u1')

    assert result.passed_phase1
    assert not result.passed_phase2
    assert result.final_reason == "Phase 2 failed: No option chain data for AAPL"


def test_no_otm_puts():
    data_source = MagicMock()
    data_source.get_price_history.return_value = rising_history()
    data_source.get_option_chain.return_value = OptionChainResult(
        ticker='AAPL', contracts=[make_put(120.0, EXPIRY_35)], success=True
    )

    result = make_scanner(data_source).scan_ticker('AAPL', 'u1')

    assert result.final_reason == 'Phase 2: No OTM put contracts available'
    data_source.get_option_greeks.assert_not_called()


def test_low_iv_rank_stops_at_phase2():
    data_source, _ = passing_data_source()
    data_source.get_option_greeks.return_value = ok('x', make_greeks([0.22, 0.45, 0.20]))

    result = make_scanner(data_source).scan_ticker('AAPL', 'u1')

    assert result.passed_phase1
    assert not result.passed_phase2
    assert result.iv_rank == pytest.approx(8)
    assert result.final_reason == "Phase 2: IV Rank 8.0 below 20 minimum"
    data_source.get_option_prices.assert_not_called()


def test_candidate_fetch_failure_ends_ticker():
    data_source, put = passing_data_source()
    data_source.get_option_prices.return_value = failed(
        put.identifier, "API rate limit exceeded. Please try again later.")

    result = make_scanner(data_source).scan_ticker('AAPL', 'u1')

    assert result.passed_phase2
    assert not result.passed_phase3
    assert result.final_reason.startswith(f"Phase 3 failed: {put.identifier}: API rate limit exceeded")


def test_full_pass_scores_and_flags():
    data_source, put = passing_data_source()
    portfolio_store = MagicMock()
    portfolio_store.has_open_csp.return_value = False
    portfolio_store.has_open_position.return_value = True

    result = make_scanner(data_source, portfolio_store=portfolio_store).scan_ticker('AAPL', 'u1')

    assert result.passed
    assert result.final_reason is None
    assert result.passed_phase1 and result.passed_phase2 and result.passed_phase3
    assert result.contract_name == put.identifier
    assert result.strike == 100.0
    assert result.dte == 35
    assert result.bid == 2.20
    assert result.ask == pytest.approx(2.244)
    assert result.premium_yield == pytest.approx(22.943, abs=1e-3)
    assert result.iv_rank == pytest.approx(60)
    assert result.delta_score == 100
    assert 0 < result.composite_score <= 100
    assert not result.open_interest_missing
    assert result.has_assigned_pos
    assert result.portfolio_flag == ASSIGNED_SHARES_FLAG
    data_source.get_option_chain.assert_called_once_with('AAPL', min_dte=5, today=NOW.date())


def test_missing_open_interest_is_flagged():
    data_source, put = passing_data_source()
    data_source.get_option_prices.return_value = ok(put.identifier, make_prices(open_interest=None))

    result = make_scanner(data_source).scan_ticker('AAPL', 'u1')

    assert result.passed
    assert result.open_interest is None
    assert result.open_interest_missing


def test_full_scan_row_count_is_stable(scan_store, portfolio_store):
    scan_store.add_ticker('u1', 'AAPL')
    scan_store.add_ticker('u1', 'MSFT')
    data_source = MagicMock()
    data_source.get_price_history.side_effect = lambda ticker: failed(ticker)
    scanner = make_scanner(data_source, scan_store, portfolio_store)

    scanner.run_full_scan('u1')
    assert len(scan_store.latest_results('u1')) == 2

    scanner.run_full_scan('u1')
    rows = scan_store.latest_results('u1')
    assert len(rows) == 2
    assert {row['ticker'] for row in rows} == {'AAPL', 'MSFT'}
    assert scan_store.scan_metadata('u1').total_scanned == 2
