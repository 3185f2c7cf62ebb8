import pytest

from inex_auth.config import Settings
from inex_auth.core.exceptions import ConfigurationError

from .conftest import ACCESS_SECRET, REFRESH_SECRET


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.ACCESS_TOKEN_EXPIRE_MINUTES == 15
    assert settings.REFRESH_TOKEN_EXPIRE_DAYS == 7
    assert settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS == 24
    assert settings.PASSWORD_RESET_TOKEN_EXPIRE_HOURS == 1
    assert settings.PASSWORD_HISTORY_SIZE == 5


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", ACCESS_SECRET)
    monkeypatch.setenv("JWT_REFRESH_SECRET", REFRESH_SECRET)
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "5")

    settings = Settings(_env_file=None)

    assert settings.ACCESS_TOKEN_EXPIRE_MINUTES == 5
    settings.check_jwt_secrets()


def test_missing_secrets_are_rejected():
    settings = Settings(_env_file=None, JWT_SECRET="", JWT_REFRESH_SECRET="")
    with pytest.raises(ConfigurationError):
        settings.check_jwt_secrets()


def test_min_secret_length_is_configurable():
    settings = Settings(
        _env_file=None,
        JWT_SECRET="a" * 16,
        JWT_REFRESH_SECRET="b" * 16,
        JWT_MIN_SECRET_LENGTH=16,
    )
    settings.check_jwt_secrets()
