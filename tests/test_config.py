from __future__ import annotations

import pytest
from pydantic import ValidationError

from parlay_oracle.core.config import Settings
from parlay_oracle.signing import CoincurveSigner


def test_secret_key_is_normalized():
    settings = Settings(oracle_secret_key="0x" + "AB" * 32)
    assert settings.oracle_secret_key == "ab" * 32


@pytest.mark.parametrize("value", ["ab" * 31, "zz" * 32])
def test_invalid_secret_key_is_rejected(value):
    with pytest.raises(ValidationError):
        Settings(oracle_secret_key=value)


def test_retry_backoff_accepts_comma_separated_values():
    settings = Settings(feed_retry_backoff_seconds="0.5, 1,3")
    assert settings.feed_retry_schedule == (0.5, 1.0, 3.0)

    with pytest.raises(ValidationError):
        Settings(feed_retry_backoff_seconds="1,-2")


def test_database_url_resolution():
    settings = Settings(database_url="postgres://user:pw@db:5432/oracle")
    assert settings.resolved_database_url.startswith("postgresql+psycopg://user:pw@db:5432/oracle")
    assert "target_session_attrs=read-write" in settings.resolved_database_url

    assert Settings(database_url="sqlite:///./x.db").resolved_database_url == "sqlite:///./x.db"

    production = Settings(environment="production")
    with pytest.raises(ValueError):
        _ = production.resolved_database_url


def test_signer_from_settings():
    configured = CoincurveSigner.from_settings(Settings(oracle_secret_key="1f" * 32))
    assert configured.public_key == CoincurveSigner.from_hex("1f" * 32).public_key

    ephemeral = CoincurveSigner.from_settings(Settings(oracle_secret_key=None))
    assert len(ephemeral.public_key) == 33

    with pytest.raises(RuntimeError):
        CoincurveSigner.from_settings(Settings(environment="production", oracle_secret_key=None))
