import json
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .domain import (
    CombinationMethod,
    DataType,
    EventKind,
    EventStatus,
    OracleAttestation,
    OracleEventSnapshot,
    ParlayContract,
    ParlayParameter,
    TransformationFunction,
)
from .repositories import AttestationOutcome


def _hex(value: bytes | None) -> str | None:
    return value.hex() if value is not None else None


class OracleInfo(BaseModel):
    name: str
    public_key: str
    public_key_xonly: str
    digit_base: int


class EventNonce(BaseModel):
    index: int
    nonce: str
    outcome: str | None = None
    signature: str | None = None


class OracleEvent(BaseModel):
    event_id: str
    name: str
    kind: EventKind
    status: EventStatus
    is_enum: bool
    nb_digits: int
    base: int
    unit: str | None = None
    maturity_epoch: int
    outcomes: list[str] | None = None
    announcement: dict[str, Any] | None = None
    announcement_signature: str | None = None
    nonces: list[EventNonce] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: OracleEventSnapshot) -> "OracleEvent":
        return cls(
            event_id=snapshot.event_id,
            name=snapshot.name,
            kind=snapshot.kind,
            status=snapshot.status,
            is_enum=snapshot.is_enum,
            nb_digits=snapshot.nb_digits,
            base=snapshot.base,
            unit=snapshot.unit,
            maturity_epoch=snapshot.maturity_epoch,
            outcomes=snapshot.outcomes,
            announcement=json.loads(snapshot.oracle_event) if snapshot.oracle_event else None,
            announcement_signature=_hex(snapshot.announcement_signature),
            nonces=[
                EventNonce(
                    index=nonce.index,
                    nonce=nonce.nonce.hex(),
                    outcome=nonce.outcome,
                    signature=_hex(nonce.signature),
                )
                for nonce in snapshot.nonces
            ],
        )


class EventList(BaseModel):
    total: int
    items: list[OracleEvent]


class Attestation(BaseModel):
    event_id: str
    oracle_public_key: str
    outcomes: list[str]
    signatures: list[str]
    nonces: list[str]

    @classmethod
    def from_domain(cls, attestation: OracleAttestation) -> "Attestation":
        return cls(
            event_id=attestation.event_id,
            oracle_public_key=attestation.oracle_public_key.hex(),
            outcomes=list(attestation.outcomes),
            signatures=[signature.hex() for signature in attestation.signatures],
            nonces=[nonce.hex() for nonce in attestation.nonces],
        )


class DataOutcome(BaseModel):
    data_type: DataType
    original_value: float
    normalized_value: float
    transformed_value: float | None = None


class AttestationResult(BaseModel):
    event_id: str
    attested_value: int
    combined_score: float | None = None
    data_outcomes: list[DataOutcome] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: AttestationOutcome) -> "AttestationResult":
        return cls(
            event_id=outcome.event_id,
            attested_value=outcome.attested_value,
            combined_score=outcome.combined_score,
            data_outcomes=[
                DataOutcome(
                    data_type=item.data_type,
                    original_value=item.original_value,
                    normalized_value=item.normalized_value,
                    transformed_value=item.transformed_value,
                )
                for item in outcome.data_outcomes
            ],
        )


class ParlayParameterIn(BaseModel):
    model_config = {"populate_by_name": True}

    data_type: DataType = Field(alias="dataType")
    threshold: int
    range: int = Field(gt=0)
    is_above_threshold: bool = Field(alias="isAboveThreshold")
    transformation: TransformationFunction = TransformationFunction.LINEAR
    weight: float = Field(default=1.0, ge=0)

    @field_validator("data_type", mode="before")
    @classmethod
    def _parse_data_type(cls, value: Any) -> DataType:
        return DataType.parse(value)

    @field_validator("transformation", mode="before")
    @classmethod
    def _parse_transformation(cls, value: Any) -> TransformationFunction:
        return TransformationFunction.parse(value)

    def to_domain(self) -> ParlayParameter:
        return ParlayParameter(
            data_type=self.data_type,
            threshold=self.threshold,
            range=self.range,
            is_above_threshold=self.is_above_threshold,
            transformation=self.transformation,
            weight=self.weight,
        )


class CreateParlayEvent(BaseModel):
    model_config = {"populate_by_name": True}

    parameters: list[ParlayParameterIn] = Field(min_length=1)
    combination_method: CombinationMethod = Field(alias="combinationMethod")
    max_normalized_value: int | None = Field(default=None, alias="maxNormalizedValue", gt=0)
    maturity_epoch: int = Field(alias="eventMaturityEpoch", ge=0)

    @field_validator("combination_method", mode="before")
    @classmethod
    def _parse_method(cls, value: Any) -> CombinationMethod:
        return CombinationMethod.parse(value)


class CreateSingleEvent(BaseModel):
    model_config = {"populate_by_name": True}

    event_type: DataType = Field(alias="eventType")
    maturity_epoch: int = Field(alias="maturity", ge=0)

    @field_validator("event_type", mode="before")
    @classmethod
    def _parse_event_type(cls, value: Any) -> DataType:
        return DataType.parse(value)


class AttestRequest(BaseModel):
    observations: dict[str, float] | None = None


class ParlayContractOut(BaseModel):
    id: str
    combination_method: CombinationMethod
    max_normalized_value: int
    parameters: list[ParlayParameterIn]

    @classmethod
    def from_domain(cls, contract: ParlayContract) -> "ParlayContractOut":
        return cls(
            id=contract.id,
            combination_method=contract.combination_method,
            max_normalized_value=contract.max_normalized_value,
            parameters=[
                ParlayParameterIn(
                    data_type=parameter.data_type,
                    threshold=parameter.threshold,
                    range=parameter.range,
                    is_above_threshold=parameter.is_above_threshold,
                    transformation=parameter.transformation,
                    weight=parameter.weight,
                )
                for parameter in contract.parameters
            ],
        )


class ParlayEventOut(BaseModel):
    contract: ParlayContractOut
    event: OracleEvent
