"""Typed domain representations shared by the scoring pipeline, persistence, and APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from parlay_oracle.errors import (
    UnsupportedCombinationMethod,
    UnsupportedDataType,
    UnsupportedTransformation,
)


class DataType(str, Enum):
    """Feed keys a parlay parameter can observe."""

    HASHRATE = "hashrate"
    FEE_RATE = "feeRate"
    BLOCK_FEES = "blockFees"
    DIFFICULTY = "difficulty"

    @classmethod
    def parse(cls, raw: str | DataType) -> DataType:
        if isinstance(raw, cls):
            return raw
        key = str(raw).strip()
        match = _DATA_TYPE_ALIASES.get(key.lower())
        if match is None:
            raise UnsupportedDataType(f"Unsupported data type '{raw}'")
        return match


_DATA_TYPE_ALIASES: dict[str, DataType] = {
    "hashrate": DataType.HASHRATE,
    "feerate": DataType.FEE_RATE,
    "fee-rate": DataType.FEE_RATE,
    "fee_rate": DataType.FEE_RATE,
    "blockfees": DataType.BLOCK_FEES,
    "block-fees": DataType.BLOCK_FEES,
    "block_fees": DataType.BLOCK_FEES,
    "difficulty": DataType.DIFFICULTY,
}


class TransformationFunction(str, Enum):
    LINEAR = "linear"
    QUADRATIC = "quadratic"
    SQRT = "sqrt"
    EXPONENTIAL = "exponential"
    LOGARITHMIC = "logarithmic"

    @classmethod
    def parse(cls, raw: str | TransformationFunction) -> TransformationFunction:
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError as exc:
            raise UnsupportedTransformation(f"Unsupported transformation '{raw}'") from exc


class CombinationMethod(str, Enum):
    MULTIPLY = "multiply"
    WEIGHTED_AVERAGE = "weightedAverage"
    GEOMETRIC_MEAN = "geometricMean"
    MIN = "min"
    MAX = "max"

    @classmethod
    def parse(cls, raw: str | CombinationMethod) -> CombinationMethod:
        if isinstance(raw, cls):
            return raw
        # Accept the camelCase wire form as well as snake_case spellings.
        key = str(raw).strip().replace("_", "").lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise UnsupportedCombinationMethod(f"Unsupported combination method '{raw}'")


class EventKind(str, Enum):
    """Contract category recorded in ``event_types``."""

    PARLAY = "parlay"
    SINGLE = "single"


class EventStatus(str, Enum):
    CREATED = "created"
    ANNOUNCED = "announced"
    ATTESTED = "attested"


@dataclass(slots=True, frozen=True)
class ParlayParameter:
    """One observed feed and how it contributes to the contract score."""

    data_type: DataType
    threshold: int
    range: int
    is_above_threshold: bool
    transformation: TransformationFunction = TransformationFunction.LINEAR
    weight: float = 1.0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> ParlayParameter:
        """Build a parameter from a camelCase or snake_case mapping."""

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in payload:
                    return payload[key]
            return default

        return cls(
            data_type=DataType.parse(pick("dataType", "data_type")),
            threshold=int(pick("threshold")),
            range=int(pick("range")),
            is_above_threshold=bool(pick("isAboveThreshold", "is_above_threshold")),
            transformation=TransformationFunction.parse(
                pick("transformation", default=TransformationFunction.LINEAR)
            ),
            weight=float(pick("weight", default=1.0)),
        )


@dataclass(slots=True)
class ParlayContract:
    id: str
    parameters: list[ParlayParameter]
    combination_method: CombinationMethod
    max_normalized_value: int

    @property
    def data_types(self) -> list[DataType]:
        seen: list[DataType] = []
        for parameter in self.parameters:
            if parameter.data_type not in seen:
                seen.append(parameter.data_type)
        return seen


@dataclass(slots=True, frozen=True)
class ParameterEvaluation:
    data_type: DataType
    original_value: float
    normalized_value: float
    transformed_value: float
    weight: float


@dataclass(slots=True)
class ContractEvaluation:
    """Pipeline output: per-parameter audit trail plus the contract-level score."""

    parameters: list[ParameterEvaluation]
    combined_score: float
    attested_value: int

    @property
    def normalized_values(self) -> list[float]:
        return [item.normalized_value for item in self.parameters]

    @property
    def transformed_values(self) -> list[float]:
        return [item.transformed_value for item in self.parameters]


@dataclass(slots=True, frozen=True)
class SignedDigit:
    index: int
    outcome: str
    signature: bytes


@dataclass(slots=True)
class EventNonceSnapshot:
    index: int
    nonce: bytes
    outcome: str | None = None
    signature: bytes | None = None


@dataclass(slots=True)
class OracleEventSnapshot:
    """Detached view of an event row and its nonces."""

    event_id: str
    name: str
    kind: EventKind
    status: EventStatus
    is_enum: bool
    nb_digits: int
    base: int
    unit: str | None
    maturity_epoch: int
    outcomes: list[str] | None
    oracle_event: bytes | None
    announcement_signature: bytes | None
    nonces: list[EventNonceSnapshot] = field(default_factory=list)

    @property
    def signatures(self) -> list[tuple[str, bytes]]:
        return [
            (nonce.outcome, nonce.signature)
            for nonce in self.nonces
            if nonce.outcome is not None and nonce.signature is not None
        ]


@dataclass(slots=True)
class OracleAttestation:
    """Signed outcome digits for an attested event, in nonce order."""

    event_id: str
    oracle_public_key: bytes
    outcomes: list[str]
    signatures: list[bytes]
    nonces: list[bytes]
