"""Shared repository result types."""

from __future__ import annotations

from dataclasses import dataclass, field

from parlay_oracle.domain import DataType, EventKind, EventNonceSnapshot, EventStatus, OracleEventSnapshot
from parlay_oracle.models import NumericAttestationOutcomeRecord, OracleEventRecord


@dataclass(slots=True)
class DataOutcomeRecord:
    data_type: DataType
    original_value: float
    normalized_value: float
    transformed_value: float | None = None


@dataclass(slots=True)
class AttestationOutcome:
    """Stored attestation result with its per-parameter audit rows."""

    event_id: str
    attested_value: int
    combined_score: float | None
    data_outcomes: list[DataOutcomeRecord] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: NumericAttestationOutcomeRecord) -> AttestationOutcome:
        return cls(
            event_id=record.event_id,
            attested_value=int(record.attested_value),
            combined_score=record.combined_score,
            data_outcomes=[
                DataOutcomeRecord(
                    data_type=DataType.parse(row.data_type),
                    original_value=row.original_value,
                    normalized_value=row.normalized_value,
                    transformed_value=row.transformed_value,
                )
                for row in record.data_outcomes
            ],
        )


def event_snapshot(record: OracleEventRecord) -> OracleEventSnapshot:
    """Detach an event row (and its nonces) into a domain snapshot."""

    kind = EventKind(record.event_type.event_type) if record.event_type else EventKind.SINGLE
    return OracleEventSnapshot(
        event_id=record.event_id,
        name=record.name,
        kind=kind,
        status=EventStatus(record.status),
        is_enum=record.is_enum,
        nb_digits=record.nb_digits,
        base=record.base,
        unit=record.unit,
        maturity_epoch=record.maturity_epoch,
        outcomes=list(record.outcomes) if record.outcomes is not None else None,
        oracle_event=record.oracle_event,
        announcement_signature=record.announcement_signature,
        nonces=[
            EventNonceSnapshot(
                index=nonce.index,
                nonce=nonce.nonce,
                outcome=nonce.outcome,
                signature=nonce.signature,
            )
            for nonce in record.nonces
        ],
    )


__all__ = ["AttestationOutcome", "DataOutcomeRecord", "event_snapshot"]
