"""Oracle event and nonce persistence."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import asc, func, select, update
from sqlalchemy.orm import Session, selectinload

from parlay_oracle.domain import EventKind, EventStatus
from parlay_oracle.models import EventNonceRecord, EventTypeRecord, OracleEventRecord


class EventRepository:
    """Encapsulate event rows, their nonce commitments, and status transitions.

    Mutations only flush; the caller's ``session_scope`` owns the transaction.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def insert_event(
        self,
        *,
        event_id: str,
        name: str,
        kind: EventKind,
        nb_digits: int,
        base: int,
        maturity_epoch: int,
        nonce_points: Sequence[bytes],
        nonce_salt: bytes = b"",
        unit: str | None = None,
        is_enum: bool = False,
        outcomes: Sequence[str] | None = None,
    ) -> OracleEventRecord:
        record = OracleEventRecord(
            event_id=event_id,
            name=name,
            is_enum=is_enum,
            status=EventStatus.CREATED.value,
            nb_digits=nb_digits,
            base=base,
            unit=unit,
            maturity_epoch=maturity_epoch,
            outcomes=list(outcomes) if outcomes is not None else None,
            nonce_salt=nonce_salt,
        )
        record.event_type = EventTypeRecord(event_type=kind.value)
        record.nonces = [
            EventNonceRecord(index=index, nonce=nonce) for index, nonce in enumerate(nonce_points)
        ]
        self._session.add(record)
        self._session.flush()
        return record

    def transition_status(
        self,
        event_id: str,
        *,
        expected: EventStatus,
        target: EventStatus,
        **values: Any,
    ) -> bool:
        """Compare-and-set the event status; ``False`` when another writer moved it first."""

        result = self._session.execute(
            update(OracleEventRecord)
            .where(
                OracleEventRecord.event_id == event_id,
                OracleEventRecord.status == expected.value,
            )
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def fill_nonce(self, event_id: str, index: int, outcome: str, signature: bytes) -> bool:
        """Write one digit signature; ``False`` when the nonce was already consumed."""

        result = self._session.execute(
            update(EventNonceRecord)
            .where(
                EventNonceRecord.event_id == event_id,
                EventNonceRecord.index == index,
                EventNonceRecord.outcome.is_(None),
                EventNonceRecord.signature.is_(None),
            )
            .values(outcome=outcome, signature=signature)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Queries

    def get_event(self, event_id: str) -> OracleEventRecord | None:
        stmt = (
            select(OracleEventRecord)
            .options(
                selectinload(OracleEventRecord.nonces),
                selectinload(OracleEventRecord.event_type),
            )
            .where(OracleEventRecord.event_id == event_id)
            # Status and nonce fills are written with bulk UPDATEs.
            .execution_options(populate_existing=True)
        )
        return self._session.execute(stmt).scalars().first()

    def get_nonces(self, event_id: str) -> list[EventNonceRecord]:
        stmt = (
            select(EventNonceRecord)
            .where(EventNonceRecord.event_id == event_id)
            .order_by(asc(EventNonceRecord.index))
        )
        return list(self._session.execute(stmt).scalars().all())

    def list_events(
        self,
        *,
        kind: EventKind | None = None,
        status: EventStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[OracleEventRecord]:
        stmt = select(OracleEventRecord).options(
            selectinload(OracleEventRecord.nonces),
            selectinload(OracleEventRecord.event_type),
        )
        if kind is not None:
            stmt = stmt.join(EventTypeRecord).where(EventTypeRecord.event_type == kind.value)
        if status is not None:
            stmt = stmt.where(OracleEventRecord.status == status.value)
        stmt = stmt.order_by(asc(OracleEventRecord.created_at), asc(OracleEventRecord.event_id))
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def count_events(
        self,
        *,
        kind: EventKind | None = None,
        status: EventStatus | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(OracleEventRecord)
        if kind is not None:
            stmt = stmt.join(EventTypeRecord).where(EventTypeRecord.event_type == kind.value)
        if status is not None:
            stmt = stmt.where(OracleEventRecord.status == status.value)
        return int(self._session.execute(stmt).scalar_one())

    def list_matured_unsigned(
        self,
        *,
        now_epoch: int,
        kinds: Sequence[EventKind] | None = None,
        limit: int | None = None,
    ) -> list[str]:
        """Return ids of announced events whose maturity has passed."""

        stmt = select(OracleEventRecord.event_id).where(
            OracleEventRecord.status == EventStatus.ANNOUNCED.value,
            OracleEventRecord.maturity_epoch <= now_epoch,
        )
        if kinds:
            stmt = stmt.join(EventTypeRecord).where(
                EventTypeRecord.event_type.in_([kind.value for kind in kinds])
            )
        stmt = stmt.order_by(asc(OracleEventRecord.maturity_epoch), asc(OracleEventRecord.event_id))
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars().all())


__all__ = ["EventRepository"]
