from __future__ import annotations

from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feeds.client import FeedError
from feeds.service import MempoolObservationSource

from . import schemas
from .core.config import settings
from .db import get_db, init_db
from .domain import EventKind, EventStatus
from .errors import (
    AlreadyAnnounced,
    AlreadyAttested,
    DuplicateEvent,
    EventNotAnnounced,
    LifecycleError,
    NonceCountMismatch,
    OracleError,
    ScoringError,
)
from .services.lifecycle import EventLifecycleManager
from .services.oracle_service import ParlayOracle
from .signing import CoincurveSigner

app = FastAPI(title="Parlay Oracle API", version="0.1.0", debug=settings.debug)

_CONFLICT_ERRORS = (
    AlreadyAnnounced,
    AlreadyAttested,
    DuplicateEvent,
    EventNotAnnounced,
    NonceCountMismatch,
)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize database connections when the API boots."""

    init_db()


@lru_cache
def get_oracle() -> ParlayOracle:
    """Provide the process-wide oracle wired with the configured key and feeds."""

    lifecycle = EventLifecycleManager(CoincurveSigner.from_settings(settings))
    return ParlayOracle(lifecycle, MempoolObservationSource())


def _http_error(exc: OracleError) -> HTTPException:
    if isinstance(exc, ScoringError):
        status_code = 422
    elif isinstance(exc, LookupError):
        status_code = 404
    elif isinstance(exc, _CONFLICT_ERRORS):
        status_code = 409
    elif isinstance(exc, LifecycleError):
        status_code = 422
    else:
        status_code = 500
    logger.warning("Request rejected with {}: {}", status_code, exc)
    return HTTPException(status_code=status_code, detail=str(exc))


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic liveness check consumed by infrastructure monitors."""

    return {"status": "ok"}


@app.get("/readyz", tags=["system"])
def readiness(db: Session = Depends(get_db)) -> dict[str, str]:
    """Readiness check that also confirms the event store answers queries."""

    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database readiness check failed: {}", exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok", "database": "ok"}


@app.get("/info", response_model=schemas.OracleInfo, tags=["system"])
def oracle_info(oracle: ParlayOracle = Depends(get_oracle)):
    return schemas.OracleInfo(
        name=settings.oracle_name,
        public_key=oracle.lifecycle.signer.public_key.hex(),
        public_key_xonly=oracle.lifecycle.signer.public_key_xonly.hex(),
        digit_base=oracle.lifecycle.base,
    )


@app.get("/available-events", response_model=list[str], tags=["events"])
def available_events() -> list[str]:
    """Data feeds a single event can be created for."""

    return [data_type.value for data_type in ParlayOracle.available_events()]


@app.get("/events", response_model=schemas.EventList, tags=["events"])
def list_events(
    *,
    kind: Annotated[EventKind | None, Query(description="Event kind filter")] = None,
    status: Annotated[EventStatus | None, Query(description="Lifecycle status filter")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    oracle: ParlayOracle = Depends(get_oracle),
):
    events = oracle.lifecycle.list_events(kind=kind, status=status, limit=limit, offset=offset)
    return schemas.EventList(
        total=oracle.lifecycle.count_events(kind=kind, status=status),
        items=[schemas.OracleEvent.from_snapshot(event) for event in events],
    )


@app.post("/events", response_model=schemas.OracleEvent, status_code=201, tags=["events"])
def create_single_event(payload: schemas.CreateSingleEvent, oracle: ParlayOracle = Depends(get_oracle)):
    """Announce an event that attests one raw feed value at maturity."""

    try:
        event = oracle.create_single_event(payload.event_type, maturity_epoch=payload.maturity_epoch)
    except OracleError as exc:
        raise _http_error(exc) from exc
    return schemas.OracleEvent.from_snapshot(event)


@app.get("/events/{event_id}", response_model=schemas.OracleEvent, tags=["events"])
def get_event(event_id: str, oracle: ParlayOracle = Depends(get_oracle)):
    """Return the event with its signed announcement."""

    try:
        event = oracle.lifecycle.get_event(event_id)
    except OracleError as exc:
        raise _http_error(exc) from exc
    return schemas.OracleEvent.from_snapshot(event)


@app.get("/events/{event_id}/attestation", response_model=schemas.Attestation, tags=["events"])
def get_attestation(event_id: str, oracle: ParlayOracle = Depends(get_oracle)):
    try:
        attestation = oracle.lifecycle.get_attestation(event_id)
    except OracleError as exc:
        raise _http_error(exc) from exc
    if attestation is None:
        raise HTTPException(status_code=404, detail="Attestation not found")
    return schemas.Attestation.from_domain(attestation)


@app.get("/events/{event_id}/outcome", response_model=schemas.AttestationResult, tags=["events"])
def get_outcome(event_id: str, oracle: ParlayOracle = Depends(get_oracle)):
    """Return the attested value with its per-parameter audit trail."""

    try:
        outcome = oracle.get_attestation_outcome(event_id)
    except OracleError as exc:
        raise _http_error(exc) from exc
    if outcome is None:
        raise HTTPException(status_code=404, detail="Outcome not found")
    return schemas.AttestationResult.from_outcome(outcome)


@app.post("/events/{event_id}/attest", response_model=schemas.AttestationResult, tags=["events"])
def attest_event(
    event_id: str,
    payload: schemas.AttestRequest | None = None,
    oracle: ParlayOracle = Depends(get_oracle),
):
    """Attest an announced event now, optionally with caller-supplied observations."""

    observations = payload.observations if payload is not None else None
    try:
        outcome = oracle.attest_event(event_id, observations)
    except OracleError as exc:
        raise _http_error(exc) from exc
    except (FeedError, httpx.HTTPError) as exc:
        logger.error("Feed failure while attesting event {}: {}", event_id, exc)
        raise HTTPException(status_code=502, detail="Data feed unavailable") from exc
    return schemas.AttestationResult.from_outcome(outcome)


@app.post("/parlay", response_model=schemas.ParlayEventOut, status_code=201, tags=["parlay"])
def create_parlay_event(payload: schemas.CreateParlayEvent, oracle: ParlayOracle = Depends(get_oracle)):
    try:
        created = oracle.create_parlay_event(
            [parameter.to_domain() for parameter in payload.parameters],
            payload.combination_method,
            maturity_epoch=payload.maturity_epoch,
            max_normalized_value=payload.max_normalized_value,
        )
    except OracleError as exc:
        raise _http_error(exc) from exc
    return schemas.ParlayEventOut(
        contract=schemas.ParlayContractOut.from_domain(created.contract),
        event=schemas.OracleEvent.from_snapshot(created.event),
    )


@app.get("/parlay/{event_id}", response_model=schemas.ParlayContractOut, tags=["parlay"])
def get_parlay_contract(event_id: str, oracle: ParlayOracle = Depends(get_oracle)):
    try:
        contract = oracle.get_contract(event_id)
    except OracleError as exc:
        raise _http_error(exc) from exc
    return schemas.ParlayContractOut.from_domain(contract)
