"""Parlay scoring pipeline: normalize, transform, combine, quantize.

Every stage is a pure function. Stages never touch storage and never retry;
invalid inputs surface as :mod:`parlay_oracle.errors` exceptions.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence

from .domain.models import (
    CombinationMethod,
    ContractEvaluation,
    DataType,
    ParameterEvaluation,
    ParlayContract,
    ParlayParameter,
    TransformationFunction,
)
from .errors import (
    EmptyContract,
    InvalidParameter,
    InvalidScore,
    MissingInput,
    UnsupportedDataType,
)


def normalize_parameter(value: float, threshold: float, range_: float, is_above_threshold: bool) -> float:
    """Map a raw observation onto [0, 1] relative to the threshold.

    Observations on the wrong side of the threshold (or exactly on it) yield
    ``0.0``; anything at or past ``threshold +/- range`` yields ``1.0``.
    """

    if range_ <= 0:
        raise InvalidParameter(f"range must be positive, got {range_}")
    if math.isnan(value):
        raise InvalidParameter("observed value is NaN")

    if is_above_threshold:
        if value <= threshold:
            return 0.0
        distance = value - threshold
    else:
        if value >= threshold:
            return 0.0
        distance = threshold - value

    return min(distance / range_, 1.0)


def _linear(value: float) -> float:
    return value


def _quadratic(value: float) -> float:
    return value * value


def _sqrt(value: float) -> float:
    return math.sqrt(value)


def _exponential(value: float) -> float:
    return math.expm1(value) / (math.e - 1.0)


def _logarithmic(value: float) -> float:
    return math.log1p((math.e - 1.0) * value)


_TRANSFORMATIONS: dict[TransformationFunction, Callable[[float], float]] = {
    TransformationFunction.LINEAR: _linear,
    TransformationFunction.QUADRATIC: _quadratic,
    TransformationFunction.SQRT: _sqrt,
    TransformationFunction.EXPONENTIAL: _exponential,
    TransformationFunction.LOGARITHMIC: _logarithmic,
}


def apply_transformation(value: float, transformation: TransformationFunction | str) -> float:
    function = TransformationFunction.parse(transformation)
    # Rounding in the rescaled curves can nudge the endpoints past 1.0.
    return min(max(_TRANSFORMATIONS[function](value), 0.0), 1.0)


def _validate_weights(weights: Sequence[float]) -> None:
    for weight in weights:
        if not math.isfinite(weight) or weight < 0:
            raise InvalidParameter(f"weights must be finite and non-negative, got {weight}")


def _weighted_product(values: Sequence[float], weights: Sequence[float]) -> float:
    product = 1.0
    for value, weight in zip(values, weights):
        product *= value**weight
    return product


def combine_scores(
    scored: Sequence[tuple[float, float]],
    method: CombinationMethod | str,
) -> float:
    """Fold ``(transformed_value, weight)`` pairs into one score.

    ``multiply`` is the weighted product ``prod(v ** w)``; with every weight at
    ``1.0`` it is exactly the arithmetic product of the values.
    """

    combination = CombinationMethod.parse(method)
    if not scored:
        raise EmptyContract("cannot combine an empty parameter list")

    values = [float(value) for value, _ in scored]
    weights = [float(weight) for _, weight in scored]
    _validate_weights(weights)

    if combination is CombinationMethod.MULTIPLY:
        return _weighted_product(values, weights)

    if combination is CombinationMethod.WEIGHTED_AVERAGE:
        total_weight = sum(weights)
        if total_weight <= 0:
            raise InvalidParameter("weightedAverage requires a positive total weight")
        return sum(value * weight for value, weight in zip(values, weights)) / total_weight

    if combination is CombinationMethod.GEOMETRIC_MEAN:
        total_weight = sum(weights)
        if total_weight <= 0:
            raise InvalidParameter("geometricMean requires a positive total weight")
        return _weighted_product(values, weights) ** (1.0 / total_weight)

    if combination is CombinationMethod.MIN:
        return min(values)

    return max(values)


def quantize_score(score: float, max_normalized_value: int) -> int:
    """Scale a combined score to an integer outcome, truncating toward zero."""

    if max_normalized_value <= 0:
        raise InvalidParameter(
            f"max_normalized_value must be positive, got {max_normalized_value}"
        )
    if not math.isfinite(score) or score < 0:
        raise InvalidScore(f"combined score must be a finite non-negative number, got {score}")

    attested = math.trunc(score * max_normalized_value)
    return min(max(attested, 0), max_normalized_value)


def _lookup_observation(observations: Mapping[str | DataType, float], data_type: DataType) -> float:
    if data_type in observations:
        return float(observations[data_type])
    # Feed fixtures key observations by their kebab spelling, e.g. "block-fees".
    for key, value in observations.items():
        if isinstance(key, DataType):
            continue
        try:
            parsed = DataType.parse(key)
        except UnsupportedDataType:
            continue
        if parsed is data_type:
            return float(value)
    raise MissingInput(data_type.value)


def evaluate_parameter(
    parameter: ParlayParameter, observations: Mapping[str | DataType, float]
) -> ParameterEvaluation:
    original = _lookup_observation(observations, parameter.data_type)
    normalized = normalize_parameter(
        original, parameter.threshold, parameter.range, parameter.is_above_threshold
    )
    transformed = apply_transformation(normalized, parameter.transformation)
    return ParameterEvaluation(
        data_type=parameter.data_type,
        original_value=original,
        normalized_value=normalized,
        transformed_value=transformed,
        weight=parameter.weight,
    )


def evaluate_contract(
    contract: ParlayContract, observations: Mapping[str | DataType, float]
) -> ContractEvaluation:
    """Run the full pipeline for a contract against one observation snapshot."""

    if not contract.parameters:
        raise EmptyContract(f"contract {contract.id} has no parameters")

    evaluations = [evaluate_parameter(parameter, observations) for parameter in contract.parameters]
    combined = combine_scores(
        [(item.transformed_value, item.weight) for item in evaluations],
        contract.combination_method,
    )
    attested = quantize_score(combined, contract.max_normalized_value)
    return ContractEvaluation(parameters=evaluations, combined_score=combined, attested_value=attested)


__all__ = [
    "apply_transformation",
    "combine_scores",
    "evaluate_contract",
    "evaluate_parameter",
    "normalize_parameter",
    "quantize_score",
]
