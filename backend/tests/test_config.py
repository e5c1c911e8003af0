import importlib

import pytest
from pydantic import ValidationError


def _load_settings(monkeypatch, extra_env=None):
    import revshare.core.config as config

    monkeypatch.setenv("SKIP_MIGRATIONS", "1")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    if extra_env:
        for key, value in extra_env.items():
            monkeypatch.setenv(key, value)
    importlib.reload(config)
    return config.Settings


def test_settings_defaults(monkeypatch):
    Settings = _load_settings(monkeypatch)
    cfg = Settings(_env_file=None)
    assert cfg.DEFAULT_REFUND_WINDOW_DAYS == 30
    assert cfg.PLATFORM_COMMISSION_PERCENT == pytest.approx(0.05)
    assert cfg.PAYOUT_MIN_AMOUNT == 1
    assert cfg.TRANSFER_TIMEOUT_SECONDS == 30
    assert cfg.ADMIN_TOKEN_HEADER_NAME == "X-Admin-Token"
    assert cfg.LOG_LEVEL == "INFO"


def test_settings_env_overrides(monkeypatch):
    Settings = _load_settings(
        monkeypatch,
        {
            "DEFAULT_REFUND_WINDOW_DAYS": "14",
            "PLATFORM_COMMISSION_PERCENT": "7.5",
            "PAYOUT_MIN_AMOUNT": "50",
            "STRIPE_SECRET_KEY": "  ",
            "ADMIN_API_TOKEN": "token",
            "LOG_LEVEL": "debug",
        },
    )
    cfg = Settings(_env_file=None)
    assert cfg.DEFAULT_REFUND_WINDOW_DAYS == 14
    assert cfg.PLATFORM_COMMISSION_PERCENT == pytest.approx(0.075)
    assert cfg.PAYOUT_MIN_AMOUNT == 50
    assert cfg.STRIPE_SECRET_KEY is None
    assert cfg.ADMIN_API_TOKEN == "token"
    assert cfg.LOG_LEVEL == "DEBUG"


def test_settings_reject_out_of_range_platform_percent(monkeypatch):
    Settings = _load_settings(monkeypatch)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, PLATFORM_COMMISSION_PERCENT=150)


def test_settings_reject_zero_payout_minimum(monkeypatch):
    Settings = _load_settings(monkeypatch)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, PAYOUT_MIN_AMOUNT=0)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(0, 0.0), (0.25, 0.25), (1, 1.0), (25, 0.25), (100, 1.0)],
)
def test_normalize_commission_percent(raw, expected):
    from revshare.core.config import normalize_commission_percent

    assert normalize_commission_percent(raw) == pytest.approx(expected)


def test_normalize_commission_percent_rejects_negative():
    from revshare.core.config import normalize_commission_percent

    with pytest.raises(ValueError):
        normalize_commission_percent(-1)
