"""Event and nonce lifecycle: Created -> Announced -> Attested.

Each transition runs in a single ``session_scope`` transaction. Races between
oracle instances sharing a store are settled by the database: the unique
``(event_id, index)`` nonce key, the unique outcome ``event_id``, and
compare-and-set updates on ``events.status`` and on unsigned nonces.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from collections.abc import Sequence
from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from parlay_oracle.core.config import get_settings
from parlay_oracle.db import session_scope
from parlay_oracle.domain import (
    EventKind,
    EventStatus,
    OracleAttestation,
    OracleEventSnapshot,
    SignedDigit,
)
from parlay_oracle.errors import (
    AlreadyAnnounced,
    AlreadyAttested,
    DuplicateEvent,
    EventNotAnnounced,
    EventNotFound,
    InvalidOutcome,
    InvalidParameter,
    NonceCountMismatch,
)
from parlay_oracle.models import OracleEventRecord
from parlay_oracle.repositories import (
    AttestationOutcome,
    AttestationRepository,
    DataOutcomeRecord,
    EventRepository,
    event_snapshot,
)
from parlay_oracle.signing import Signer

from .digits import sign_numeric_outcome, sign_outcome_digits


def _canonical_json(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def build_announcement_payload(record: OracleEventRecord, public_key: bytes) -> bytes:
    """Serialize event metadata plus its ordered nonce commitments."""

    if record.is_enum:
        descriptor: dict[str, Any] = {"type": "enum", "outcomes": list(record.outcomes or [])}
    else:
        descriptor = {
            "type": "digitDecomposition",
            "base": record.base,
            "isSigned": False,
            "nbDigits": record.nb_digits,
            "precision": 0,
            "unit": record.unit,
        }
    payload = {
        "eventId": record.event_id,
        "name": record.name,
        "maturityEpoch": record.maturity_epoch,
        "oraclePublicKey": public_key.hex(),
        "eventDescriptor": descriptor,
        "nonces": [nonce.nonce.hex() for nonce in sorted(record.nonces, key=lambda item: item.index)],
    }
    return _canonical_json(payload)


class EventLifecycleManager:
    """Drive oracle events through announcement and attestation exactly once."""

    def __init__(
        self,
        signer: Signer,
        session_factory: sessionmaker[Session] | None = None,
        *,
        base: int | None = None,
    ) -> None:
        self._signer = signer
        self._session_factory = session_factory
        self._base = base if base is not None else get_settings().digit_base
        if self._base < 2:
            raise InvalidParameter(f"digit base must be at least 2, got {self._base}")

    @property
    def signer(self) -> Signer:
        return self._signer

    @property
    def base(self) -> int:
        return self._base

    def _scope(self):
        return session_scope(self._session_factory)

    # ------------------------------------------------------------------
    # Created

    def create_event(
        self,
        event_id: str,
        name: str,
        nb_digits: int,
        *,
        maturity_epoch: int,
        kind: EventKind = EventKind.PARLAY,
        unit: str | None = None,
    ) -> OracleEventSnapshot:
        if nb_digits < 1:
            raise InvalidParameter(f"nb_digits must be positive, got {nb_digits}")
        salt = secrets.token_bytes(16)
        nonce_points = [self._signer.nonce_point(event_id, index, salt) for index in range(nb_digits)]
        return self._insert_event(
            event_id=event_id,
            name=name,
            kind=kind,
            nb_digits=nb_digits,
            maturity_epoch=maturity_epoch,
            unit=unit,
            nonce_points=nonce_points,
            nonce_salt=salt,
        )

    def create_enum_event(
        self,
        event_id: str,
        name: str,
        outcomes: Sequence[str],
        *,
        maturity_epoch: int,
        kind: EventKind = EventKind.SINGLE,
    ) -> OracleEventSnapshot:
        labels = [str(outcome) for outcome in outcomes]
        if not labels or len(set(labels)) != len(labels):
            raise InvalidParameter("enum events need at least one outcome and no duplicates")
        salt = secrets.token_bytes(16)
        return self._insert_event(
            event_id=event_id,
            name=name,
            kind=kind,
            nb_digits=1,
            maturity_epoch=maturity_epoch,
            nonce_points=[self._signer.nonce_point(event_id, 0, salt)],
            nonce_salt=salt,
            is_enum=True,
            outcomes=labels,
        )

    def _insert_event(self, **fields: Any) -> OracleEventSnapshot:
        event_id = fields["event_id"]
        try:
            with self._scope() as session:
                repo = EventRepository(session)
                if repo.get_event(event_id) is not None:
                    raise DuplicateEvent(event_id, f"Event {event_id} already exists")
                record = repo.insert_event(base=self._base, **fields)
                snapshot = event_snapshot(record)
        except IntegrityError as exc:
            raise DuplicateEvent(event_id, f"Event {event_id} already exists") from exc
        logger.info(
            "Created event {} kind={} digits={}",
            event_id,
            snapshot.kind.value,
            snapshot.nb_digits,
        )
        return snapshot

    # ------------------------------------------------------------------
    # Announced

    def announce(self, event_id: str) -> OracleEventSnapshot:
        with self._scope() as session:
            repo = EventRepository(session)
            record = repo.get_event(event_id)
            if record is None:
                raise EventNotFound(event_id, f"Event {event_id} not found")
            if record.status != EventStatus.CREATED.value:
                logger.warning("Rejected announce for event {} in status {}", event_id, record.status)
                raise AlreadyAnnounced(event_id, f"Event {event_id} is already announced")

            payload = build_announcement_payload(record, self._signer.public_key)
            signature = self._signer.sign_announcement(payload)
            if not repo.transition_status(
                event_id,
                expected=EventStatus.CREATED,
                target=EventStatus.ANNOUNCED,
                oracle_event=payload,
                announcement_signature=signature,
                announcement_event_id=hashlib.sha256(payload).hexdigest(),
            ):
                raise AlreadyAnnounced(event_id, f"Event {event_id} is already announced")
            snapshot = event_snapshot(repo.get_event(event_id))

        logger.info("Announced event {} with {} nonces", event_id, len(snapshot.nonces))
        return snapshot

    # ------------------------------------------------------------------
    # Attested

    def _load_for_attestation(self, repo: EventRepository, event_id: str) -> OracleEventRecord:
        record = repo.get_event(event_id)
        if record is None:
            raise EventNotFound(event_id, f"Event {event_id} not found")
        if record.status == EventStatus.ATTESTED.value:
            logger.warning("Rejected attest for already attested event {}", event_id)
            raise AlreadyAttested(event_id, f"Event {event_id} is already attested")
        if record.status != EventStatus.ANNOUNCED.value:
            raise EventNotAnnounced(event_id, f"Event {event_id} has not been announced")
        return record

    def attest(
        self,
        event_id: str,
        outcome: int,
        *,
        combined_score: float | None = None,
        data_outcomes: Sequence[DataOutcomeRecord] = (),
    ) -> OracleEventSnapshot:
        """Sign ``outcome`` digit by digit and persist it with its audit rows atomically."""

        try:
            with self._scope() as session:
                repo = EventRepository(session)
                record = self._load_for_attestation(repo, event_id)
                if record.is_enum:
                    raise InvalidOutcome(event_id, f"Event {event_id} is an enum event")

                nonces = repo.get_nonces(event_id)
                if len(nonces) != record.nb_digits:
                    raise NonceCountMismatch(event_id, record.nb_digits, len(nonces))
                signed = sign_numeric_outcome(
                    self._signer,
                    event_id,
                    outcome,
                    [nonce.nonce for nonce in nonces],
                    base=record.base,
                    salt=record.nonce_salt,
                )
                self._store_signatures(repo, event_id, len(nonces), signed)
                AttestationRepository(session).save_outcome(
                    event_id=event_id,
                    attested_value=outcome,
                    combined_score=combined_score,
                    data_outcomes=data_outcomes,
                )
                snapshot = event_snapshot(repo.get_event(event_id))
        except IntegrityError as exc:
            raise AlreadyAttested(event_id, f"Event {event_id} is already attested") from exc

        logger.info("Attested event {} value={}", event_id, outcome)
        return snapshot

    def attest_enum(self, event_id: str, outcome: str) -> OracleEventSnapshot:
        try:
            with self._scope() as session:
                repo = EventRepository(session)
                record = self._load_for_attestation(repo, event_id)
                if not record.is_enum:
                    raise InvalidOutcome(event_id, f"Event {event_id} is a numeric event")
                if outcome not in (record.outcomes or []):
                    raise InvalidOutcome(
                        event_id, f"Outcome '{outcome}' was not announced for event {event_id}"
                    )

                nonces = repo.get_nonces(event_id)
                if len(nonces) != 1:
                    raise NonceCountMismatch(event_id, 1, len(nonces))
                signed = sign_outcome_digits(
                    self._signer, event_id, [outcome], [nonces[0].nonce], record.nonce_salt
                )
                self._store_signatures(repo, event_id, len(nonces), signed)
                snapshot = event_snapshot(repo.get_event(event_id))
        except IntegrityError as exc:
            raise AlreadyAttested(event_id, f"Event {event_id} is already attested") from exc

        logger.info("Attested enum event {} outcome={}", event_id, outcome)
        return snapshot

    def _store_signatures(
        self,
        repo: EventRepository,
        event_id: str,
        nonce_count: int,
        signed: Sequence[SignedDigit],
    ) -> None:
        if len(signed) != nonce_count:
            raise NonceCountMismatch(event_id, nonce_count, len(signed))

        digest = hashlib.sha256()
        for digit in signed:
            digest.update(digit.signature)

        if not repo.transition_status(
            event_id,
            expected=EventStatus.ANNOUNCED,
            target=EventStatus.ATTESTED,
            attestation_event_id=digest.hexdigest(),
        ):
            raise AlreadyAttested(event_id, f"Event {event_id} is already attested")
        for digit in signed:
            if not repo.fill_nonce(event_id, digit.index, digit.outcome, digit.signature):
                raise AlreadyAttested(
                    event_id, f"Nonce {digit.index} of event {event_id} is already signed"
                )

    # ------------------------------------------------------------------
    # Queries

    def get_event(self, event_id: str) -> OracleEventSnapshot:
        with self._scope() as session:
            record = EventRepository(session).get_event(event_id)
            if record is None:
                raise EventNotFound(event_id, f"Event {event_id} not found")
            return event_snapshot(record)

    def list_events(
        self,
        *,
        kind: EventKind | None = None,
        status: EventStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[OracleEventSnapshot]:
        with self._scope() as session:
            records = EventRepository(session).list_events(
                kind=kind, status=status, limit=limit, offset=offset
            )
            return [event_snapshot(record) for record in records]

    def count_events(
        self, *, kind: EventKind | None = None, status: EventStatus | None = None
    ) -> int:
        with self._scope() as session:
            return EventRepository(session).count_events(kind=kind, status=status)

    def get_attestation(self, event_id: str) -> OracleAttestation | None:
        """Return the signed digits of an attested event, ``None`` while unattested."""

        snapshot = self.get_event(event_id)
        if snapshot.status is not EventStatus.ATTESTED:
            return None
        return OracleAttestation(
            event_id=event_id,
            oracle_public_key=self._signer.public_key,
            outcomes=[outcome for outcome, _ in snapshot.signatures],
            signatures=[signature for _, signature in snapshot.signatures],
            nonces=[nonce.nonce for nonce in snapshot.nonces],
        )

    def get_outcome(self, event_id: str) -> AttestationOutcome | None:
        with self._scope() as session:
            return AttestationRepository(session).get_outcome(event_id)

    def list_matured_unsigned(
        self,
        now_epoch: int,
        *,
        kinds: Sequence[EventKind] | None = None,
        limit: int | None = None,
    ) -> list[str]:
        with self._scope() as session:
            return EventRepository(session).list_matured_unsigned(
                now_epoch=now_epoch, kinds=kinds, limit=limit
            )


__all__ = ["EventLifecycleManager", "build_announcement_payload"]
