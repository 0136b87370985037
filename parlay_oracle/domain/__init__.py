"""Domain models for parlay contracts, pipeline results, and oracle events."""

from .models import (
    CombinationMethod,
    ContractEvaluation,
    DataType,
    EventKind,
    EventNonceSnapshot,
    EventStatus,
    OracleAttestation,
    OracleEventSnapshot,
    ParameterEvaluation,
    ParlayContract,
    ParlayParameter,
    SignedDigit,
    TransformationFunction,
)

__all__ = [
    "CombinationMethod",
    "ContractEvaluation",
    "DataType",
    "EventKind",
    "EventNonceSnapshot",
    "EventStatus",
    "OracleAttestation",
    "OracleEventSnapshot",
    "ParameterEvaluation",
    "ParlayContract",
    "ParlayParameter",
    "SignedDigit",
    "TransformationFunction",
]
