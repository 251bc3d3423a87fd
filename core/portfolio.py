import logging
from dataclasses import dataclass
from typing import Optional

from database.stores import PortfolioStore

logger = logging.getLogger(__name__)

OPEN_CSP_FLAG = "Open CSP exists, skip or sell a covered call instead"
ASSIGNED_SHARES_FLAG = "Holding assigned shares, consider a covered call"


@dataclass(frozen=True)
class PortfolioCheck:
    has_open_csp: bool
    has_assigned_pos: bool
    portfolio_flag: Optional[str] = None


def check_portfolio(store: PortfolioStore, user_id: str, ticker: str) -> PortfolioCheck:
    """Flag candidates that overlap with what the user already holds."""
    has_open_csp = store.has_open_csp(user_id, ticker)
    has_assigned_pos = store.has_open_position(user_id, ticker)

    portfolio_flag = None
    if has_open_csp:
        portfolio_flag = OPEN_CSP_FLAG
    elif has_assigned_pos:
        portfolio_flag = ASSIGNED_SHARES_FLAG

    if portfolio_flag:
        logger.info(f"{ticker}: {portfolio_flag}")
    return PortfolioCheck(has_open_csp, has_assigned_pos, portfolio_flag)
