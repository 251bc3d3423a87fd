import os
from dotenv import load_dotenv
from typing import List

load_dotenv()


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing. Never recovered per ticker."""


class Config:
    """Configuration class for the CSP watchlist scanner."""

    # Database Configuration
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///csp_scanner.db")

    # Market data vendor (FinancialData.net)
    FINANCIAL_DATA_API_KEY = os.getenv("FINANCIAL_DATA_API_KEY")
    FINANCIAL_DATA_BASE_URL = os.getenv("FINANCIAL_DATA_BASE_URL", "https://financialdata.net/api/v1")

    # Application Settings
    REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "30"))
    MAX_REQUESTS_PER_MINUTE = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "10"))
    MIN_REQUEST_INTERVAL = float(os.getenv("MIN_REQUEST_INTERVAL", "6.0"))  # seconds between dispatches
    MARKET_HOLIDAYS_FILE = os.getenv("MARKET_HOLIDAYS_FILE", "us_market_holidays.csv")

    # Scanner overrides
    SCANNER_MIN_PRICE = float(os.getenv("SCANNER_MIN_PRICE", "13"))
    SCANNER_MAX_PRICE = float(os.getenv("SCANNER_MAX_PRICE", "150"))
    SCANNER_MIN_AVG_VOLUME = float(os.getenv("SCANNER_MIN_AVG_VOLUME", "1000000"))
    SCANNER_MIN_IV_RANK = float(os.getenv("SCANNER_MIN_IV_RANK", "20"))
    SCANNER_TARGET_MIN_DTE = int(os.getenv("SCANNER_TARGET_MIN_DTE", "5"))
    SCANNER_TARGET_MAX_DTE = int(os.getenv("SCANNER_TARGET_MAX_DTE", "45"))
    SCANNER_MIN_PREMIUM_YIELD = float(os.getenv("SCANNER_MIN_PREMIUM_YIELD", "8"))

    @classmethod
    def validate(cls) -> bool:
        """Validate that all required environment variables are set."""
        missing_vars = cls.missing_variables()
        if missing_vars:
            print(f"Missing required environment variables: {missing_vars}")
            return False
        return True

    @classmethod
    def missing_variables(cls) -> List[str]:
        required_vars = ["DATABASE_URL", "FINANCIAL_DATA_API_KEY"]
        return [var for var in required_vars if not getattr(cls, var)]

    @classmethod
    def scan_criteria(cls):
        """Build scanner thresholds, applying any environment overrides."""
        from analysis.criteria import ScanCriteria

        return ScanCriteria(
            min_price=cls.SCANNER_MIN_PRICE,
            max_price=cls.SCANNER_MAX_PRICE,
            min_avg_volume=cls.SCANNER_MIN_AVG_VOLUME,
            min_iv_rank=cls.SCANNER_MIN_IV_RANK,
            target_min_dte=cls.SCANNER_TARGET_MIN_DTE,
            target_max_dte=cls.SCANNER_TARGET_MAX_DTE,
            min_premium_yield=cls.SCANNER_MIN_PREMIUM_YIELD,
        )


# Global config instance
config = Config()
