"""Standalone job that attests every matured, announced oracle event."""

from __future__ import annotations

import argparse
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

import httpx
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from feeds.client import FeedError, MempoolClient
from feeds.service import MempoolObservationSource
from parlay_oracle.core.config import Settings, get_settings
from parlay_oracle.db import init_db
from parlay_oracle.domain import EventKind
from parlay_oracle.errors import AlreadyAttested, OracleError
from parlay_oracle.services.lifecycle import EventLifecycleManager
from parlay_oracle.services.oracle_service import ParlayOracle
from parlay_oracle.signing import CoincurveSigner


@dataclass(slots=True)
class AttestationSummary:
    checked_events: int = 0
    attested: int = 0
    already_attested: int = 0
    attested_values: dict[str, int] = field(default_factory=dict)
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked_events": self.checked_events,
            "attested": self.attested,
            "already_attested": self.already_attested,
            "attested_values": self.attested_values,
            "failures": self.failures,
        }


class AttestationPipeline:
    """Sign matured events; each event commits or rolls back on its own."""

    def __init__(self, settings: Settings | None = None, oracle: ParlayOracle | None = None) -> None:
        self.settings = settings or get_settings()
        self._client: MempoolClient | None = None
        if oracle is None:
            self._client = MempoolClient(
                base_url=str(self.settings.mempool_base_url),
                timeout=self.settings.feed_timeout_seconds,
                retry_schedule=self.settings.feed_retry_schedule,
            )
            lifecycle = EventLifecycleManager(
                CoincurveSigner.from_settings(self.settings), base=self.settings.digit_base
            )
            oracle = ParlayOracle(lifecycle, MempoolObservationSource(self._client))
        self.oracle = oracle

    def run(
        self,
        *,
        now: datetime | None = None,
        limit: int | None = None,
        kinds: Sequence[EventKind] | None = None,
    ) -> AttestationSummary:
        summary = AttestationSummary()
        now = now or datetime.now(timezone.utc)
        limit = limit or self.settings.attestation_batch_limit
        kinds = list(kinds) if kinds else [EventKind.PARLAY, EventKind.SINGLE]

        candidates = self.oracle.lifecycle.list_matured_unsigned(
            int(now.timestamp()), kinds=kinds, limit=limit
        )
        if not candidates:
            logger.info("No matured events awaiting attestation")
            return summary

        logger.info("Attestation sweep evaluating {} events", len(candidates))
        for event_id in candidates:
            summary.checked_events += 1
            try:
                outcome = self.oracle.attest_event(event_id)
            except AlreadyAttested:
                # Another oracle instance got there first.
                summary.already_attested += 1
                continue
            except (OracleError, FeedError, httpx.HTTPError, SQLAlchemyError) as exc:
                logger.error("Failed to attest event {}: {}", event_id, exc)
                summary.failures.append(
                    {"event_id": event_id, "error": exc.__class__.__name__, "reason": str(exc)}
                )
                continue
            summary.attested += 1
            summary.attested_values[event_id] = outcome.attested_value

        logger.info(
            "Attestation sweep finished: checked={}, attested={}, failures={}",
            summary.checked_events,
            summary.attested,
            len(summary.failures),
        )
        return summary

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Attest announced oracle events whose maturity has passed",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of events to attest")
    parser.add_argument(
        "--kind",
        dest="kinds",
        action="append",
        choices=[kind.value for kind in EventKind],
        help="Restrict the sweep to an event kind (can be provided multiple times)",
    )
    parser.add_argument(
        "--watch-interval",
        type=float,
        default=None,
        help="Keep sweeping every N seconds instead of exiting after one pass",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(summary: AttestationSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2))
    logger.info("Attestation summary written to {}", path)


def main(argv: Sequence[str] | None = None) -> AttestationSummary:
    args = _parse_args(argv)
    init_db()
    kinds = [EventKind(kind) for kind in args.kinds] if args.kinds else None
    pipeline = AttestationPipeline(get_settings())
    summary = AttestationSummary()
    try:
        summary = pipeline.run(limit=args.limit, kinds=kinds)
        while args.watch_interval:
            if args.summary_path:
                _write_summary(summary, args.summary_path)
            time.sleep(args.watch_interval)
            summary = pipeline.run(limit=args.limit, kinds=kinds)
    except KeyboardInterrupt:
        logger.info("Attestation watcher stopped")
    finally:
        pipeline.close()

    if args.summary_path:
        _write_summary(summary, args.summary_path)
    return summary


if __name__ == "__main__":
    main()
