import requests
import logging
from typing import Callable, List, Optional, Tuple
from datetime import date, timedelta
from config import config, ConfigurationError
from data.models import (
    ChainRecordWire, FetchResult, OptionChainResult, OptionContract, OptionGreeksSnapshot,
    OptionPriceSnapshot, PriceBar, contract_from_wire,
)
from utils.rate_limiter import RequestThrottle

logger = logging.getLogger(__name__)

CHAIN_PAGE_SIZE = 300
MAX_CHAIN_PAGES = 50


def parse_records(data: list, parse: Callable) -> list:
    """Parse a vendor array. Non-object elements are malformed payloads."""
    records = []
    for raw in data:
        if not isinstance(raw, dict):
            raise ValueError(f"Malformed record: {raw!r}")
        records.append(parse(raw))
    return records


class FinancialDataSource:
    """FinancialData.net client for price history, option chains, greeks and option prices.

    Every request goes through the shared RequestThrottle. Vendor and network
    failures come back as unsuccessful results; only a missing API key raises.
    """

    def __init__(self, throttle: RequestThrottle, api_key: Optional[str] = None,
                 base_url: Optional[str] = None, session: Optional[requests.Session] = None,
                 timeout: Optional[int] = None):
        self.throttle = throttle
        self.api_key = api_key if api_key is not None else config.FINANCIAL_DATA_API_KEY
        self.base_url = (base_url or config.FINANCIAL_DATA_BASE_URL).rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout or config.REQUEST_TIMEOUT

    def validate_api_key(self):
        """Fail fast when no vendor credential is configured."""
        if not self.api_key:
            raise ConfigurationError("FINANCIAL_DATA_API_KEY is not configured in environment variables")

    def get_price_history(self, ticker: str) -> FetchResult:
        """Get the full daily price history for a ticker."""
        ticker = ticker.upper()
        return self._fetch_records('stock-prices', ticker, PriceBar.from_json,
                                   'price history', f"No price history data for {ticker}")

    def get_option_greeks(self, contract_name: str) -> FetchResult:
        """Get the greeks history for one option contract."""
        return self._fetch_records('option-greeks', contract_name, OptionGreeksSnapshot.from_json,
                                   'option greeks', f"No greeks data for {contract_name}")

    def get_option_prices(self, contract_name: str) -> FetchResult:
        """Get OHLCV and open interest history for one option contract."""
        return self._fetch_records('option-prices', contract_name, OptionPriceSnapshot.from_json,
                                   'option prices', f"No price data for {contract_name}")

    def get_option_chain(self, ticker: str, min_dte: int = 0,
                         today: Optional[date] = None) -> OptionChainResult:
        """Get all contracts expiring at least ``min_dte`` days from today.

        The vendor pages newest expiration first, so paging stops on the first
        page holding anything that expires before the cutoff. That page is
        filtered like the rest rather than dropped.
        """
        self.validate_api_key()
        ticker = ticker.upper()
        cutoff = (today or date.today()) + timedelta(days=min_dte)

        wires: List[ChainRecordWire] = []
        pages = 0
        try:
            while pages < MAX_CHAIN_PAGES:
                offset = pages * CHAIN_PAGE_SIZE
                data, error = self._get('option-chain', ticker, offset=offset)
                if error:
                    return OptionChainResult(ticker=ticker, error=error, pages_fetched=pages)
                pages += 1

                if not data:
                    break

                page = parse_records(data, ChainRecordWire.from_json)
                wires.extend(page)

                if any(wire.expiration_date < cutoff for wire in page):
                    break
            else:
                logger.warning(f"Option chain for {ticker} exceeded {MAX_CHAIN_PAGES} pages, truncating")

            contracts = self._translate_chain(wires, ticker, cutoff)
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error fetching option chain for {ticker}: {e}")
            return OptionChainResult(ticker=ticker, error=f"Failed to fetch option chain: {e}",
                                     pages_fetched=pages)

        if not wires:
            return OptionChainResult(ticker=ticker, error=f"No option chain data for {ticker}",
                                     pages_fetched=pages)

        logger.info(f"Option chain for {ticker}: {len(contracts)} of {len(wires)} contracts "
                    f"expire on or after {cutoff} ({pages} pages)")
        return OptionChainResult(ticker=ticker, contracts=contracts, success=True, pages_fetched=pages)

    @staticmethod
    def _translate_chain(wires: List[ChainRecordWire], ticker: str, cutoff: date) -> List[OptionContract]:
        """Contracts expiring on or after the cutoff. Records with an unknown type are skipped."""
        contracts = []
        for wire in wires:
            if wire.expiration_date < cutoff:
                continue
            try:
                contracts.append(contract_from_wire(wire, ticker))
            except ValueError as e:
                logger.warning(f"Skipping chain record {wire.contract_name} for {ticker}: {e}")
        return contracts

    def _fetch_records(self, endpoint: str, identifier: str, parse: Callable,
                       what: str, empty_message: str) -> FetchResult:
        self.validate_api_key()
        try:
            data, error = self._get(endpoint, identifier)
            if error:
                return FetchResult(identifier=identifier, error=error)
            if not data:
                return FetchResult(identifier=identifier, error=empty_message)
            records = parse_records(data, parse)
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error fetching {what} for {identifier}: {e}")
            return FetchResult(identifier=identifier, error=f"Failed to fetch {what}: {e}")

        return FetchResult(identifier=identifier, records=records, success=True)

    def _get(self, endpoint: str, identifier: str,
             offset: Optional[int] = None) -> Tuple[Optional[list], Optional[str]]:
        """One throttled GET. Returns the decoded array or an error message."""
        url = f"{self.base_url}/{endpoint}"
        params = {'identifier': identifier, 'key': self.api_key}
        if offset is not None:
            params['offset'] = offset

        response = self.throttle.enqueue(
            lambda: self.session.get(url, params=params, timeout=self.timeout)
        )

        error = self._http_error(response, identifier)
        if error:
            logger.warning(f"{endpoint} request for {identifier} failed: {error}")
            return None, error

        data = response.json()
        if not isinstance(data, list):
            return [], None
        return data, None

    @staticmethod
    def _http_error(response, identifier: str) -> Optional[str]:
        if 200 <= response.status_code < 300:
            return None
        if response.status_code == 401:
            return "API authentication failed. Check FINANCIAL_DATA_API_KEY."
        if response.status_code == 404:
            return f"No data found for identifier: {identifier}"
        if response.status_code == 429:
            return "API rate limit exceeded. Please try again later."
        return f"API server error: {response.status_code} {response.reason}"
