from __future__ import annotations

import pytest

from parlay_oracle.domain import CombinationMethod, ParlayContract, ParlayParameter
from parlay_oracle.scoring import evaluate_contract

# Expected floats in the fixtures are rounded; attested values are exact.
TOLERANCE = 1e-3


def test_vector_fixtures(vectors):
    assert len(vectors) == 5
    for vector in vectors:
        contract = ParlayContract(
            id=vector["name"],
            parameters=[ParlayParameter.from_mapping(item) for item in vector["parameters"]],
            combination_method=CombinationMethod.parse(vector["combination_method"]),
            max_normalized_value=vector["max_normalized_value"],
        )
        result = evaluate_contract(contract, vector["observations"])
        expected = vector["expected"]

        assert result.normalized_values == pytest.approx(expected["normalized"], abs=TOLERANCE), vector["name"]
        assert result.transformed_values == pytest.approx(expected["transformed"], abs=TOLERANCE), vector["name"]
        assert result.combined_score == pytest.approx(expected["combined"], abs=TOLERANCE), vector["name"]
        assert result.attested_value == expected["attested_value"], vector["name"]
        assert [item.original_value for item in result.parameters] == [
            float(vector["observations"][key]) for key in vector["observations"]
        ]


def test_inverse_direction_truncates_instead_of_rounding(vectors):
    vector = next(item for item in vectors if item["name"] == "inverse_direction_truncates")
    contract = ParlayContract(
        id="inverse",
        parameters=[ParlayParameter.from_mapping(item) for item in vector["parameters"]],
        combination_method=CombinationMethod.MULTIPLY,
        max_normalized_value=1000,
    )
    result = evaluate_contract(contract, vector["observations"])
    assert result.normalized_values[0] == pytest.approx(0.578711)
    assert result.attested_value == 578
