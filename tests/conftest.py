from __future__ import annotations

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from parlay_oracle.core.config import Settings
from parlay_oracle.db import create_db_engine, create_session_factory, init_db
from parlay_oracle.domain import DataType
from parlay_oracle.services.lifecycle import EventLifecycleManager
from parlay_oracle.services.oracle_service import ParlayOracle
from parlay_oracle.signing import CoincurveSigner

ORACLE_SECRET_HEX = "1f" * 32


class StaticObservations:
    """Observation source returning canned values and recording requests."""

    def __init__(self, values: dict[DataType, float]) -> None:
        self.values = dict(values)
        self.requests: list[list[DataType]] = []

    def collect(self, data_types):
        requested = [DataType.parse(item) for item in data_types]
        self.requests.append(requested)
        return {item: self.values[item] for item in requested}


@pytest.fixture
def vectors() -> list[dict[str, object]]:
    path = Path(__file__).parent / "data" / "vectors.json"
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'oracle.db'}",
        oracle_secret_key=ORACLE_SECRET_HEX,
        feed_retry_backoff_seconds="0,0",
    )
    monkeypatch.setattr("parlay_oracle.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("parlay_oracle.core.config.settings", settings)
    return settings


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path/'oracle.db'}", echo=False)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def signer() -> CoincurveSigner:
    return CoincurveSigner.from_hex(ORACLE_SECRET_HEX)


@pytest.fixture
def lifecycle(signer, session_factory) -> EventLifecycleManager:
    return EventLifecycleManager(signer, session_factory, base=2)


@pytest.fixture
def observations() -> StaticObservations:
    return StaticObservations(
        {
            DataType.HASHRATE: 2520332473552123.0,
            DataType.BLOCK_FEES: 24212890.0,
            DataType.FEE_RATE: 12.4,
            DataType.DIFFICULTY: 88.1,
        }
    )


@pytest.fixture
def oracle(lifecycle, observations, session_factory) -> ParlayOracle:
    return ParlayOracle(lifecycle, observations, session_factory=session_factory)
