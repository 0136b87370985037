"""Digit decomposition and per-digit signing."""

from __future__ import annotations

from collections.abc import Sequence

from parlay_oracle.domain.models import SignedDigit
from parlay_oracle.errors import DigitOverflow, InvalidParameter, InvalidScore
from parlay_oracle.signing import Signer


def decompose_outcome(value: int, nb_digits: int, base: int = 2) -> list[int]:
    """Return ``value`` as exactly ``nb_digits`` digits, most significant first."""

    if base < 2:
        raise InvalidParameter(f"digit base must be at least 2, got {base}")
    if nb_digits < 1:
        raise InvalidParameter(f"nb_digits must be positive, got {nb_digits}")
    if value < 0:
        raise InvalidScore(f"cannot decompose negative outcome {value}")
    if value >= base**nb_digits:
        raise DigitOverflow(value, nb_digits, base)

    digits = [0] * nb_digits
    remainder = value
    for position in range(nb_digits - 1, -1, -1):
        remainder, digits[position] = divmod(remainder, base)
    return digits


def digits_required(max_value: int, base: int = 2) -> int:
    """Smallest digit count able to represent every integer in ``[0, max_value]``."""

    count = 1
    while base**count <= max_value:
        count += 1
    return count


def sign_outcome_digits(
    signer: Signer,
    event_id: str,
    outcomes: Sequence[str],
    nonce_points: Sequence[bytes],
    salt: bytes = b"",
) -> list[SignedDigit]:
    """Sign ``outcomes[i]`` with nonce ``i``; callers persist the full set or nothing."""

    if len(outcomes) != len(nonce_points):
        raise ValueError(
            f"{len(outcomes)} outcomes cannot be paired with {len(nonce_points)} nonces"
        )
    return [
        SignedDigit(
            index=index,
            outcome=outcome,
            signature=signer.sign_digit(event_id, index, outcome, nonce_point, salt),
        )
        for index, (outcome, nonce_point) in enumerate(zip(outcomes, nonce_points))
    ]


def sign_numeric_outcome(
    signer: Signer,
    event_id: str,
    value: int,
    nonce_points: Sequence[bytes],
    base: int = 2,
    salt: bytes = b"",
) -> list[SignedDigit]:
    digits = decompose_outcome(value, len(nonce_points), base)
    return sign_outcome_digits(
        signer, event_id, [str(digit) for digit in digits], nonce_points, salt
    )


__all__ = ["decompose_outcome", "digits_required", "sign_numeric_outcome", "sign_outcome_digits"]
