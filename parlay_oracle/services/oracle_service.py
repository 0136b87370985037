"""Parlay oracle: contracts, scoring and the event lifecycle wired together."""

from __future__ import annotations

import math
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from parlay_oracle.core.config import get_settings
from parlay_oracle.db import session_scope
from parlay_oracle.domain import (
    CombinationMethod,
    ContractEvaluation,
    DataType,
    EventKind,
    EventStatus,
    OracleEventSnapshot,
    ParlayContract,
    ParlayParameter,
)
from parlay_oracle.errors import (
    AlreadyAttested,
    ContractNotFound,
    EmptyContract,
    EventNotAnnounced,
    InvalidOutcome,
    InvalidParameter,
    MissingInput,
)
from parlay_oracle.repositories import (
    AttestationOutcome,
    ContractRepository,
    DataOutcomeRecord,
)
from parlay_oracle.scoring import evaluate_contract

from .digits import digits_required
from .lifecycle import EventLifecycleManager


class ObservationSource(Protocol):
    """Collaborator that fetches current feed values."""

    def collect(self, data_types: Iterable[DataType | str]) -> dict[DataType, float]:
        """Return one observation per requested data type."""


@dataclass(slots=True)
class ParlayEvent:
    contract: ParlayContract
    event: OracleEventSnapshot


class ParlayOracle:
    """High level oracle operations used by the API and the attestation sweep."""

    def __init__(
        self,
        lifecycle: EventLifecycleManager,
        observations: ObservationSource | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self._observations = observations
        self._session_factory = session_factory
        self._settings = get_settings()

    def _collect(self, data_types: Sequence[DataType]) -> dict[DataType, float]:
        if self._observations is None:
            raise MissingInput(", ".join(item.value for item in data_types))
        return self._observations.collect(data_types)

    # ------------------------------------------------------------------
    # Event creation

    def create_parlay_event(
        self,
        parameters: Sequence[ParlayParameter | Mapping],
        combination_method: CombinationMethod | str,
        *,
        maturity_epoch: int,
        max_normalized_value: int | None = None,
    ) -> ParlayEvent:
        """Store a contract, commit its nonces, and announce it."""

        parsed = [
            item if isinstance(item, ParlayParameter) else ParlayParameter.from_mapping(item)
            for item in parameters
        ]
        if not parsed:
            raise EmptyContract("a parlay contract needs at least one parameter")
        for parameter in parsed:
            if parameter.range <= 0:
                raise InvalidParameter(f"range must be positive for {parameter.data_type.value}")
            if not math.isfinite(parameter.weight) or parameter.weight < 0:
                raise InvalidParameter(
                    f"weight must be finite and non-negative for {parameter.data_type.value}"
                )

        max_value = (
            self._settings.default_max_normalized_value
            if max_normalized_value is None
            else int(max_normalized_value)
        )
        if max_value <= 0:
            raise InvalidParameter(f"max_normalized_value must be positive, got {max_value}")

        contract = ParlayContract(
            id=str(uuid.uuid4()),
            parameters=parsed,
            combination_method=CombinationMethod.parse(combination_method),
            max_normalized_value=max_value,
        )
        with session_scope(self._session_factory) as session:
            ContractRepository(session).save_contract(contract)

        nb_digits = digits_required(max_value, self.lifecycle.base)
        self.lifecycle.create_event(
            contract.id,
            f"parlay-{contract.id}",
            nb_digits,
            maturity_epoch=maturity_epoch,
            kind=EventKind.PARLAY,
            unit="parlay",
        )
        event = self.lifecycle.announce(contract.id)
        logger.info(
            "Created parlay event {} parameters={} method={}",
            contract.id,
            len(parsed),
            contract.combination_method.value,
        )
        return ParlayEvent(contract=contract, event=event)

    def create_single_event(self, data_type: DataType | str, *, maturity_epoch: int) -> OracleEventSnapshot:
        feed = DataType.parse(data_type)
        event_id = str(uuid.uuid4())
        self.lifecycle.create_event(
            event_id,
            f"{feed.value}-{maturity_epoch}",
            self._settings.single_event_nb_digits,
            maturity_epoch=maturity_epoch,
            kind=EventKind.SINGLE,
            unit=feed.value,
        )
        return self.lifecycle.announce(event_id)

    # ------------------------------------------------------------------
    # Evaluation and attestation

    def _ensure_attestable(self, event_id: str) -> OracleEventSnapshot:
        # Checked before fetching feeds; the lifecycle re-checks inside its transaction.
        event = self.lifecycle.get_event(event_id)
        if event.status is EventStatus.ATTESTED:
            raise AlreadyAttested(event_id, f"Event {event_id} is already attested")
        if event.status is not EventStatus.ANNOUNCED:
            raise EventNotAnnounced(event_id, f"Event {event_id} has not been announced")
        return event

    def get_contract(self, event_id: str) -> ParlayContract:
        with session_scope(self._session_factory) as session:
            contract = ContractRepository(session).get_contract(event_id)
        if contract is None:
            raise ContractNotFound(event_id, f"No parlay contract for event {event_id}")
        return contract

    def evaluate(
        self,
        contract: ParlayContract,
        observations: Mapping[DataType | str, float] | None = None,
    ) -> ContractEvaluation:
        if observations is None:
            observations = self._collect(contract.data_types)
        return evaluate_contract(contract, observations)

    def attest_parlay_event(
        self,
        event_id: str,
        observations: Mapping[DataType | str, float] | None = None,
    ) -> AttestationOutcome:
        self._ensure_attestable(event_id)
        contract = self.get_contract(event_id)
        evaluation = self.evaluate(contract, observations)
        self.lifecycle.attest(
            event_id,
            evaluation.attested_value,
            combined_score=evaluation.combined_score,
            data_outcomes=[
                DataOutcomeRecord(
                    data_type=item.data_type,
                    original_value=item.original_value,
                    normalized_value=item.normalized_value,
                    transformed_value=item.transformed_value,
                )
                for item in evaluation.parameters
            ],
        )
        return self.lifecycle.get_outcome(event_id)

    def attest_single_event(self, event_id: str, observation: float | None = None) -> AttestationOutcome:
        event = self._ensure_attestable(event_id)
        if event.kind is not EventKind.SINGLE or event.is_enum:
            raise InvalidOutcome(event_id, f"Event {event_id} is not a single data-feed event")
        feed = DataType.parse(event.unit or event.name)
        if observation is None:
            observation = self._collect([feed])[feed]
        if not math.isfinite(observation):
            raise InvalidParameter(f"observation for {feed.value} must be finite, got {observation}")

        value = max(math.ceil(observation), 0)
        self.lifecycle.attest(
            event_id,
            value,
            data_outcomes=[
                DataOutcomeRecord(
                    data_type=feed,
                    original_value=float(observation),
                    normalized_value=float(value),
                )
            ],
        )
        return self.lifecycle.get_outcome(event_id)

    def attest_event(
        self,
        event_id: str,
        observations: Mapping[DataType | str, float] | None = None,
    ) -> AttestationOutcome:
        """Attest a numeric event of either kind."""

        event = self.lifecycle.get_event(event_id)
        if event.kind is EventKind.PARLAY:
            return self.attest_parlay_event(event_id, observations)
        observation = None
        if observations:
            feed = DataType.parse(event.unit or event.name)
            evaluation_input = {DataType.parse(key): value for key, value in observations.items()}
            if feed not in evaluation_input:
                raise MissingInput(feed.value)
            observation = float(evaluation_input[feed])
        return self.attest_single_event(event_id, observation)

    def get_attestation_outcome(self, event_id: str) -> AttestationOutcome | None:
        """Outcome and audit rows of an attested event; ``None`` until it is attested."""

        outcome = self.lifecycle.get_outcome(event_id)
        if outcome is None:
            # Unknown ids raise EventNotFound rather than returning None.
            self.lifecycle.get_event(event_id)
        return outcome

    @staticmethod
    def available_events() -> list[DataType]:
        return list(DataType)


__all__ = ["ObservationSource", "ParlayEvent", "ParlayOracle"]
