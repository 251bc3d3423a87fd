from config import Config


def test_scan_criteria_applies_overrides(monkeypatch):
    monkeypatch.setattr(Config, 'SCANNER_MIN_PRICE', 20.0)
    monkeypatch.setattr(Config, 'SCANNER_TARGET_MAX_DTE', 30)

    criteria = Config.scan_criteria()

    assert criteria.min_price == 20.0
    assert criteria.target_max_dte == 30
    assert criteria.max_price == Config.SCANNER_MAX_PRICE
    assert criteria.min_option_volume == 20


def test_missing_variables_reports_api_key(monkeypatch):
    monkeypatch.setattr(Config, 'FINANCIAL_DATA_API_KEY', None)

    assert Config.missing_variables() == ['FINANCIAL_DATA_API_KEY']
    assert not Config.validate()
