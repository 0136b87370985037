from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    LargeBinary,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain.models import EventStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OracleEventRecord(Base):
    __tablename__ = "events"

    event_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_enum: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=EventStatus.CREATED.value, index=True
    )
    nb_digits: Mapped[int] = mapped_column(Integer, nullable=False)
    base: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    unit: Mapped[str | None] = mapped_column(String, nullable=True)
    maturity_epoch: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    outcomes: Mapped[list | None] = mapped_column(JSON, nullable=True)
    nonce_salt: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=b"")
    oracle_event: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    announcement_signature: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    announcement_event_id: Mapped[str | None] = mapped_column(String, nullable=True)
    attestation_event_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    nonces: Mapped[list["EventNonceRecord"]] = relationship(
        "EventNonceRecord",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EventNonceRecord.index",
    )
    event_type: Mapped["EventTypeRecord | None"] = relationship(
        "EventTypeRecord",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )


class EventNonceRecord(Base):
    __tablename__ = "event_nonces"
    __table_args__ = (UniqueConstraint("event_id", "index", name="uq_event_nonces_event_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(
        String, ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True
    )
    index: Mapped[int] = mapped_column(Integer, nullable=False)
    nonce: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    outcome: Mapped[str | None] = mapped_column(String, nullable=True)
    signature: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    event: Mapped[OracleEventRecord] = relationship("OracleEventRecord", back_populates="nonces")


class EventTypeRecord(Base):
    __tablename__ = "event_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    oracle_event_id: Mapped[str] = mapped_column(
        String, ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, unique=True
    )
    event_type: Mapped[str] = mapped_column(String, nullable=False, index=True)

    event: Mapped[OracleEventRecord] = relationship("OracleEventRecord", back_populates="event_type")


class ParlayContractRecord(Base):
    __tablename__ = "parlay_contracts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    combination_method: Mapped[str] = mapped_column(String, nullable=False)
    max_normalized_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    parameters: Mapped[list["ParlayParameterRecord"]] = relationship(
        "ParlayParameterRecord",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ParlayParameterRecord.parameter_id",
    )


class ParlayParameterRecord(Base):
    __tablename__ = "parlay_parameters"

    contract_id: Mapped[str] = mapped_column(
        String, ForeignKey("parlay_contracts.id", ondelete="CASCADE"), primary_key=True
    )
    parameter_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    data_type: Mapped[str] = mapped_column(String, nullable=False)
    threshold: Mapped[int] = mapped_column(BigInteger, nullable=False)
    range: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_above_threshold: Mapped[bool] = mapped_column(Boolean, nullable=False)
    transformation: Mapped[str] = mapped_column(String, nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    contract: Mapped[ParlayContractRecord] = relationship(
        "ParlayContractRecord", back_populates="parameters"
    )


class NumericAttestationOutcomeRecord(Base):
    __tablename__ = "numeric_attestation_outcome"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(
        String, ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, unique=True
    )
    combined_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    attested_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    data_outcomes: Mapped[list["NumericAttestationDataOutcomeRecord"]] = relationship(
        "NumericAttestationDataOutcomeRecord",
        back_populates="outcome",
        cascade="all, delete-orphan",
        order_by="NumericAttestationDataOutcomeRecord.id",
    )


class NumericAttestationDataOutcomeRecord(Base):
    __tablename__ = "numeric_attestation_data_outcome"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("numeric_attestation_outcome.event_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data_type: Mapped[str] = mapped_column(String, nullable=False)
    normalized_value: Mapped[float] = mapped_column(Float, nullable=False)
    transformed_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    original_value: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    outcome: Mapped[NumericAttestationOutcomeRecord] = relationship(
        "NumericAttestationOutcomeRecord", back_populates="data_outcomes"
    )
