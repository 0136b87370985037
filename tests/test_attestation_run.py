from __future__ import annotations

import json
from datetime import datetime, timezone

from parlay_oracle.domain import EventKind, EventStatus
from parlay_oracle.services.oracle_service import ParlayOracle
from pipelines.attestation_run import (
    AttestationPipeline,
    AttestationSummary,
    _parse_args,
    _write_summary,
)

HASHRATE_PARAMETER = {
    "dataType": "hashrate",
    "threshold": 2_000_000_000_000_000,
    "range": 1_000_000_000_000_000,
    "isAboveThreshold": True,
}
NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_sweep_attests_matured_events_only(oracle, test_settings):
    due = oracle.create_parlay_event([HASHRATE_PARAMETER], "multiply", maturity_epoch=int(NOW.timestamp()) - 60)
    future = oracle.create_parlay_event([HASHRATE_PARAMETER], "multiply", maturity_epoch=int(NOW.timestamp()) + 60)
    single = oracle.create_single_event("difficulty", maturity_epoch=1)

    summary = AttestationPipeline(test_settings, oracle=oracle).run(now=NOW)

    assert summary.checked_events == 2
    assert summary.attested == 2
    assert summary.failures == []
    assert summary.attested_values == {single.event_id: 89, due.contract.id: 520}
    assert oracle.lifecycle.get_event(future.contract.id).status is EventStatus.ANNOUNCED


def test_sweep_filters_by_kind_and_limit(oracle, test_settings):
    parlay = oracle.create_parlay_event([HASHRATE_PARAMETER], "multiply", maturity_epoch=5)
    oracle.create_single_event("hashrate", maturity_epoch=1)

    pipeline = AttestationPipeline(test_settings, oracle=oracle)
    summary = pipeline.run(now=NOW, kinds=[EventKind.PARLAY], limit=5)

    assert list(summary.attested_values) == [parlay.contract.id]


def test_failing_event_is_recorded_and_sweep_continues(lifecycle, session_factory, observations, test_settings):
    broken = ParlayOracle(lifecycle, session_factory=session_factory)
    failing = broken.create_parlay_event([HASHRATE_PARAMETER], "multiply", maturity_epoch=1)
    working = ParlayOracle(lifecycle, observations, session_factory=session_factory)
    passing = working.create_parlay_event(
        [dict(HASHRATE_PARAMETER, dataType="blockFees", threshold=20_000_000, range=10_000_000)], "multiply", maturity_epoch=2
    )

    class FlakyOracle(ParlayOracle):
        def attest_event(self, event_id, observations=None):
            if event_id == failing.contract.id:
                return broken.attest_event(event_id, observations)
            return super().attest_event(event_id, observations)

    flaky = FlakyOracle(lifecycle, observations, session_factory=session_factory)
    summary = AttestationPipeline(test_settings, oracle=flaky).run(now=NOW)

    assert summary.checked_events == 2
    assert summary.attested_values == {passing.contract.id: 421}
    assert summary.failures[0]["event_id"] == failing.contract.id
    assert summary.failures[0]["error"] == "MissingInput"
    assert lifecycle.get_event(failing.contract.id).status is EventStatus.ANNOUNCED


def test_empty_sweep(oracle, test_settings):
    summary = AttestationPipeline(test_settings, oracle=oracle).run(now=NOW)
    assert summary.to_dict() == {
        "checked_events": 0,
        "attested": 0,
        "already_attested": 0,
        "attested_values": {},
        "failures": [],
    }


def test_cli_arguments_and_summary(tmp_path):
    args = _parse_args(["--limit", "3", "--kind", "parlay", "--summary-path", str(tmp_path / "s.json")])
    assert args.limit == 3
    assert args.kinds == ["parlay"]
    assert args.watch_interval is None

    summary = AttestationSummary(checked_events=1, attested=1, attested_values={"evt": 7})
    _write_summary(summary, args.summary_path)
    assert json.loads(args.summary_path.read_text())["attested_values"] == {"evt": 7}
