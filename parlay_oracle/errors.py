"""Exception taxonomy for the scoring pipeline and the event lifecycle."""

from __future__ import annotations


class OracleError(Exception):
    """Base class for every error raised by the oracle core."""


class ScoringError(OracleError):
    """A contract or observation is malformed; retrying will not help."""


class InvalidParameter(ScoringError, ValueError):
    pass


class EmptyContract(ScoringError, ValueError):
    pass


class InvalidScore(ScoringError, ValueError):
    pass


class MissingInput(ScoringError, LookupError):
    def __init__(self, data_type: str) -> None:
        super().__init__(f"No observation provided for data type '{data_type}'")
        self.data_type = data_type


class UnsupportedDataType(ScoringError, ValueError):
    pass


class UnsupportedTransformation(ScoringError, ValueError):
    pass


class UnsupportedCombinationMethod(ScoringError, ValueError):
    pass


class DigitOverflow(ScoringError, ValueError):
    def __init__(self, value: int, nb_digits: int, base: int) -> None:
        super().__init__(
            f"Outcome {value} does not fit in {nb_digits} base-{base} digits"
        )
        self.value = value
        self.nb_digits = nb_digits
        self.base = base


class LifecycleError(OracleError):
    """A requested event transition was rejected."""

    def __init__(self, event_id: str, message: str | None = None) -> None:
        super().__init__(message or f"{self.__class__.__name__}: event_id={event_id}")
        self.event_id = event_id


class DuplicateEvent(LifecycleError):
    pass


class EventNotFound(LifecycleError, LookupError):
    pass


class ContractNotFound(LifecycleError, LookupError):
    pass


class AlreadyAnnounced(LifecycleError):
    pass


class EventNotAnnounced(LifecycleError):
    pass


class AlreadyAttested(LifecycleError):
    pass


class NonceCountMismatch(LifecycleError):
    def __init__(self, event_id: str, expected: int, actual: int) -> None:
        super().__init__(
            event_id,
            f"Event {event_id} expected {expected} nonce signatures but got {actual}",
        )
        self.expected = expected
        self.actual = actual


class InvalidOutcome(LifecycleError, ValueError):
    pass


__all__ = [
    "AlreadyAnnounced",
    "AlreadyAttested",
    "ContractNotFound",
    "DigitOverflow",
    "DuplicateEvent",
    "EmptyContract",
    "EventNotAnnounced",
    "EventNotFound",
    "InvalidOutcome",
    "InvalidParameter",
    "InvalidScore",
    "LifecycleError",
    "MissingInput",
    "NonceCountMismatch",
    "OracleError",
    "ScoringError",
    "UnsupportedCombinationMethod",
    "UnsupportedDataType",
    "UnsupportedTransformation",
]
