"""Attestation outcome persistence."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from parlay_oracle.models import (
    NumericAttestationDataOutcomeRecord,
    NumericAttestationOutcomeRecord,
)

from .types import AttestationOutcome, DataOutcomeRecord


class AttestationRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def save_outcome(
        self,
        *,
        event_id: str,
        attested_value: int,
        combined_score: float | None,
        data_outcomes: Sequence[DataOutcomeRecord] = (),
    ) -> NumericAttestationOutcomeRecord:
        """Insert the outcome row; the unique ``event_id`` rejects a second writer."""

        record = NumericAttestationOutcomeRecord(
            event_id=event_id,
            attested_value=attested_value,
            combined_score=combined_score,
        )
        self._session.add(record)
        # Flush first so the data rows reference an existing outcome.
        self._session.flush()
        for item in data_outcomes:
            self._session.add(
                NumericAttestationDataOutcomeRecord(
                    event_id=event_id,
                    data_type=item.data_type.value,
                    original_value=item.original_value,
                    normalized_value=item.normalized_value,
                    transformed_value=item.transformed_value,
                )
            )
        self._session.flush()
        return record

    def get_outcome(self, event_id: str) -> AttestationOutcome | None:
        stmt = (
            select(NumericAttestationOutcomeRecord)
            .options(selectinload(NumericAttestationOutcomeRecord.data_outcomes))
            .where(NumericAttestationOutcomeRecord.event_id == event_id)
        )
        record = self._session.execute(stmt).scalars().first()
        if record is None:
            return None
        return AttestationOutcome.from_record(record)


__all__ = ["AttestationRepository"]
