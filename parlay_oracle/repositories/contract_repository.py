"""Parlay contract persistence."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from parlay_oracle.domain import (
    CombinationMethod,
    DataType,
    ParlayContract,
    ParlayParameter,
    TransformationFunction,
)
from parlay_oracle.models import ParlayContractRecord, ParlayParameterRecord


class ContractRepository:
    """Store parlay contracts and convert them back to domain objects.

    Enumerated columns are plain strings in the database and are parsed into
    their enums here, once, on the way out.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def save_contract(self, contract: ParlayContract) -> ParlayContractRecord:
        record = ParlayContractRecord(
            id=contract.id,
            combination_method=contract.combination_method.value,
            max_normalized_value=contract.max_normalized_value,
        )
        record.parameters = [
            ParlayParameterRecord(
                parameter_id=position,
                data_type=parameter.data_type.value,
                threshold=parameter.threshold,
                range=parameter.range,
                is_above_threshold=parameter.is_above_threshold,
                transformation=parameter.transformation.value,
                weight=parameter.weight,
            )
            for position, parameter in enumerate(contract.parameters)
        ]
        self._session.add(record)
        self._session.flush()
        return record

    def get_contract(self, contract_id: str) -> ParlayContract | None:
        stmt = (
            select(ParlayContractRecord)
            .options(selectinload(ParlayContractRecord.parameters))
            .where(ParlayContractRecord.id == contract_id)
        )
        record = self._session.execute(stmt).scalars().first()
        if record is None:
            return None
        return ParlayContract(
            id=record.id,
            combination_method=CombinationMethod.parse(record.combination_method),
            max_normalized_value=int(record.max_normalized_value),
            parameters=[
                ParlayParameter(
                    data_type=DataType.parse(row.data_type),
                    threshold=int(row.threshold),
                    range=int(row.range),
                    is_above_threshold=bool(row.is_above_threshold),
                    transformation=TransformationFunction.parse(row.transformation),
                    weight=float(row.weight),
                )
                for row in record.parameters
            ],
        )


__all__ = ["ContractRepository"]
