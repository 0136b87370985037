from __future__ import annotations

from collections.abc import Callable, Iterable

from loguru import logger

from parlay_oracle.domain import DataType

from .client import MempoolClient, TimePeriod


def _readers(client: MempoolClient) -> dict[DataType, Callable[[TimePeriod], float]]:
    return {
        DataType.HASHRATE: client.get_hashrate,
        DataType.FEE_RATE: client.get_fee_rate,
        DataType.BLOCK_FEES: client.get_block_fees,
        DataType.DIFFICULTY: client.get_difficulty,
    }


def collect_observations(
    data_types: Iterable[DataType | str],
    client: MempoolClient,
    *,
    period: TimePeriod = TimePeriod.THREE_MONTHS,
) -> dict[DataType, float]:
    """Fetch one observation per requested data type."""

    readers = _readers(client)
    observations: dict[DataType, float] = {}
    for raw in data_types:
        data_type = DataType.parse(raw)
        if data_type in observations:
            continue
        observations[data_type] = readers[data_type](period)
        logger.info("Observed {}={}", data_type.value, observations[data_type])
    return observations


class MempoolObservationSource:
    """Observation collaborator used by the oracle service to fetch live feeds."""

    def __init__(
        self,
        client: MempoolClient | None = None,
        *,
        period: TimePeriod = TimePeriod.THREE_MONTHS,
    ) -> None:
        self._client = client
        self._period = period

    def collect(self, data_types: Iterable[DataType | str]) -> dict[DataType, float]:
        if self._client is not None:
            return collect_observations(data_types, self._client, period=self._period)
        with MempoolClient() as client:
            return collect_observations(data_types, client, period=self._period)
