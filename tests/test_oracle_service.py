from __future__ import annotations

import pytest

from parlay_oracle.domain import (
    CombinationMethod,
    DataType,
    EventKind,
    EventStatus,
    ParlayParameter,
    TransformationFunction,
)
from parlay_oracle.errors import (
    AlreadyAttested,
    ContractNotFound,
    EmptyContract,
    EventNotFound,
    InvalidParameter,
    MissingInput,
)
from parlay_oracle.services.oracle_service import ParlayOracle

TWO_PARAMETERS = [
    {
        "dataType": "hashrate",
        "threshold": 2_000_000_000_000_000,
        "range": 1_000_000_000_000_000,
        "isAboveThreshold": True,
        "transformation": "linear",
        "weight": 1.0,
    },
    {
        "dataType": "block-fees",
        "threshold": 20_000_000,
        "range": 10_000_000,
        "isAboveThreshold": True,
    },
]


def test_create_parlay_event_stores_contract_and_announces(oracle):
    created = oracle.create_parlay_event(
        TWO_PARAMETERS, "multiply", maturity_epoch=1_700_000_000, max_normalized_value=1000
    )

    assert created.event.event_id == created.contract.id
    assert created.event.status is EventStatus.ANNOUNCED
    assert created.event.kind is EventKind.PARLAY
    assert created.event.nb_digits == 10

    stored = oracle.get_contract(created.contract.id)
    assert stored.combination_method is CombinationMethod.MULTIPLY
    assert [parameter.data_type for parameter in stored.parameters] == [
        DataType.HASHRATE,
        DataType.BLOCK_FEES,
    ]
    assert stored.parameters[0].threshold == 2_000_000_000_000_000
    assert stored.parameters[1].transformation is TransformationFunction.LINEAR


def test_default_max_normalized_value(oracle, lifecycle):
    created = oracle.create_parlay_event(TWO_PARAMETERS[:1], "min", maturity_epoch=1)
    assert created.contract.max_normalized_value == 1000
    assert lifecycle.base ** created.event.nb_digits > 1000


def test_create_parlay_event_validates_contract(oracle):
    with pytest.raises(EmptyContract):
        oracle.create_parlay_event([], "multiply", maturity_epoch=1)
    bad_range = [ParlayParameter(DataType.HASHRATE, threshold=1, range=0, is_above_threshold=True)]
    with pytest.raises(InvalidParameter):
        oracle.create_parlay_event(bad_range, "multiply", maturity_epoch=1)
    with pytest.raises(InvalidParameter):
        oracle.create_parlay_event(TWO_PARAMETERS, "multiply", maturity_epoch=1, max_normalized_value=0)


def test_attest_parlay_event_with_explicit_observations(oracle):
    created = oracle.create_parlay_event(TWO_PARAMETERS, "multiply", maturity_epoch=1)

    outcome = oracle.attest_parlay_event(
        created.contract.id, {"hashrate": 2520332473552123, "block-fees": 24212890}
    )

    assert outcome.attested_value == 219
    assert outcome.combined_score == pytest.approx(0.2192, abs=1e-3)
    assert [row.data_type for row in outcome.data_outcomes] == [DataType.HASHRATE, DataType.BLOCK_FEES]
    assert outcome.data_outcomes[1].original_value == 24212890
    assert outcome.data_outcomes[1].normalized_value == pytest.approx(0.421289)
    assert oracle.lifecycle.get_event(created.contract.id).status is EventStatus.ATTESTED


def test_attest_parlay_event_collects_missing_observations(oracle, observations):
    created = oracle.create_parlay_event(TWO_PARAMETERS, "multiply", maturity_epoch=1)

    outcome = oracle.attest_event(created.contract.id)

    assert observations.requests == [[DataType.HASHRATE, DataType.BLOCK_FEES]]
    assert outcome.attested_value == 219


def test_already_attested_event_does_not_hit_feeds(oracle, observations):
    created = oracle.create_parlay_event(TWO_PARAMETERS, "multiply", maturity_epoch=1)
    oracle.attest_event(created.contract.id)

    with pytest.raises(AlreadyAttested):
        oracle.attest_event(created.contract.id)
    assert len(observations.requests) == 1


def test_single_event_attests_ceiled_feed_value(oracle, observations):
    event = oracle.create_single_event("fee-rate", maturity_epoch=1)
    assert event.unit == "feeRate"
    assert event.nb_digits == 20

    outcome = oracle.attest_event(event.event_id)

    assert outcome.attested_value == 13
    assert outcome.combined_score is None
    assert outcome.data_outcomes[0].original_value == pytest.approx(12.4)
    assert observations.requests == [[DataType.FEE_RATE]]


def test_single_event_with_supplied_observation(oracle):
    event = oracle.create_single_event(DataType.DIFFICULTY, maturity_epoch=1)
    outcome = oracle.attest_event(event.event_id, {"difficulty": 101.2})
    assert outcome.attested_value == 102

    other = oracle.create_single_event(DataType.DIFFICULTY, maturity_epoch=1)
    with pytest.raises(MissingInput):
        oracle.attest_event(other.event_id, {"hashrate": 1.0})


def test_missing_contract_and_event(oracle, lifecycle):
    lifecycle.create_event("orphan", "orphan", 2, maturity_epoch=1)
    lifecycle.announce("orphan")
    with pytest.raises(ContractNotFound):
        oracle.attest_parlay_event("orphan", {"hashrate": 1})
    with pytest.raises(EventNotFound):
        oracle.get_attestation_outcome("missing")
    assert oracle.get_attestation_outcome("orphan") is None


def test_attest_without_observation_source(lifecycle, session_factory):
    oracle = ParlayOracle(lifecycle, session_factory=session_factory)
    created = oracle.create_parlay_event(TWO_PARAMETERS, "multiply", maturity_epoch=1)
    with pytest.raises(MissingInput):
        oracle.attest_event(created.contract.id)
    assert lifecycle.get_event(created.contract.id).status is EventStatus.ANNOUNCED


def test_available_events():
    assert [item.value for item in ParlayOracle.available_events()] == [
        "hashrate",
        "feeRate",
        "blockFees",
        "difficulty",
    ]


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
def test_single_event_rejects_non_finite_observation(oracle, value):
    event = oracle.create_single_event("hashrate", maturity_epoch=1)

    with pytest.raises(InvalidParameter):
        oracle.attest_event(event.event_id, {"hashrate": value})
    assert oracle.lifecycle.get_event(event.event_id).status is EventStatus.ANNOUNCED


def test_create_parlay_event_rejects_infinite_weight(oracle):
    with pytest.raises(InvalidParameter):
        oracle.create_parlay_event(
            [dict(TWO_PARAMETERS[0], weight=float("inf"))], "weightedAverage", maturity_epoch=1
        )
