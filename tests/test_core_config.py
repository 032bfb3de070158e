import pytest
from pydantic import ValidationError

from core.config import BotSettings, ConfigurationError, WalletProfile


@pytest.fixture
def mock_env(monkeypatch):
    monkeypatch.setenv("MAX_RETRIES", "5")
    monkeypatch.setenv("VERBOSE", "false")
    monkeypatch.setenv("REFERRAL_CODE", "abc123")
    monkeypatch.setenv("CYCLE_INTERVAL_SECONDS", "60")


def test_bot_settings_defaults():
    settings = BotSettings(_env_file=None)
    assert settings.max_retries == 30
    assert settings.backoff_base_seconds == 2.0
    assert settings.transient_retry_delay_seconds == 2.0
    assert settings.cycle_interval_seconds == 3600
    assert settings.wallet_failure_delay_seconds == 5
    assert settings.verbose is True
    assert settings.referral_code == "knYyWnsE"
    assert settings.wallets_file.endswith("wallets.json")
    assert settings.proxies_file.endswith("proxy.txt")


def test_bot_settings_from_env(mock_env):
    settings = BotSettings(_env_file=None)
    assert settings.max_retries == 5
    assert settings.verbose is False
    assert settings.referral_code == "abc123"
    assert settings.cycle_interval_seconds == 60


def test_max_retries_must_be_positive():
    with pytest.raises(ValidationError):
        BotSettings(_env_file=None, max_retries=0)


def test_configuration_error_is_runtime_error():
    assert issubclass(ConfigurationError, RuntimeError)


class TestWalletProfile:
    """Test suite for WalletProfile model."""

    def test_from_wallet_file_entry(self):
        """The JSON key ``privateKey`` maps to ``private_key``."""
        profile = WalletProfile.model_validate(
            {"address": "0xabc", "privateKey": "0x01"}
        )
        assert profile.address == "0xabc"
        assert profile.private_key == "0x01"
        assert profile.label == "0xabc"

    def test_populate_by_field_name(self):
        profile = WalletProfile(private_key="0x02")
        assert profile.private_key == "0x02"
        assert profile.address is None

    def test_empty_profile_label(self):
        """A profile without an address still has a printable label."""
        assert WalletProfile().label == "<new wallet>"
