from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any

import httpx
from loguru import logger

from parlay_oracle.core.config import settings

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class FeedError(RuntimeError):
    """A data feed returned something the oracle cannot attest to."""


class TimePeriod(str, Enum):
    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"
    ONE_YEAR = "1y"
    TWO_YEARS = "2y"
    THREE_YEARS = "3y"
    ALL = ""


def _should_retry(exc: Exception) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return False


def _average(rows: Sequence[dict[str, Any]], key: str, path: str) -> float:
    if not rows:
        raise FeedError(f"mempool {path} returned no data points")
    try:
        total = sum(float(row[key]) for row in rows)
    except (KeyError, TypeError, ValueError) as exc:
        raise FeedError(f"mempool {path} rows are missing numeric '{key}'") from exc
    return total / len(rows)


class MempoolClient:
    """Thin wrapper around the mempool.space mining endpoints."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        retry_schedule: Sequence[float] | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = (base_url or str(settings.mempool_base_url)).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.feed_timeout_seconds
        self.retry_schedule = tuple(
            settings.feed_retry_schedule if retry_schedule is None else retry_schedule
        )
        self._sleep = sleep
        self.client = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=transport)

    def _get_json(self, path: str) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                logger.debug("mempool GET {} attempt={}", path, attempt)
                response = self.client.get(path)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as exc:
                if not _should_retry(exc) or attempt > len(self.retry_schedule):
                    raise
                delay = self.retry_schedule[attempt - 1]
                logger.warning(
                    "mempool GET {} failed on attempt {} ({}); retrying in {:.1f}s",
                    path,
                    attempt,
                    exc.__class__.__name__,
                    delay,
                )
                self._sleep(delay)

    @staticmethod
    def _hashrate_path(period: TimePeriod) -> str:
        if period is TimePeriod.ALL:
            return "/mining/hashrate"
        return f"/mining/hashrate/{period.value}"

    def get_hashrate(self, period: TimePeriod = TimePeriod.THREE_MONTHS) -> float:
        """Current network hashrate in EH/s."""

        payload = self._get_json(self._hashrate_path(period))
        try:
            return float(payload["currentHashrate"]) / 1e18
        except (KeyError, TypeError, ValueError) as exc:
            raise FeedError("mempool hashrate response is missing currentHashrate") from exc

    def get_difficulty(self, period: TimePeriod = TimePeriod.THREE_MONTHS) -> float:
        """Current difficulty in units of 1e12."""

        payload = self._get_json(self._hashrate_path(period))
        try:
            return float(payload["currentDifficulty"]) / 1e12
        except (KeyError, TypeError, ValueError) as exc:
            raise FeedError("mempool hashrate response is missing currentDifficulty") from exc

    def get_block_fees(self, period: TimePeriod = TimePeriod.THREE_MONTHS) -> float:
        path = f"/mining/blocks/fees/{period.value}"
        return _average(self._get_json(path), "avgFees", path)

    def get_fee_rate(self, period: TimePeriod = TimePeriod.THREE_MONTHS) -> float:
        path = f"/mining/blocks/fee-rates/{period.value}"
        return _average(self._get_json(path), "avgFee_90", path)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "MempoolClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
