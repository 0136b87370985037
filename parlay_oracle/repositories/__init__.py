"""Repository abstractions for database interactions."""

from .attestation_repository import AttestationRepository
from .contract_repository import ContractRepository
from .event_repository import EventRepository
from .types import AttestationOutcome, DataOutcomeRecord, event_snapshot

__all__ = [
    "AttestationOutcome",
    "AttestationRepository",
    "ContractRepository",
    "DataOutcomeRecord",
    "EventRepository",
    "event_snapshot",
]
