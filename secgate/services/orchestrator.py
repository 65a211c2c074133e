"""Orchestrator: run scanners -> normalize -> combine -> gate -> deploy.

The run moves through an explicit state machine::

    PENDING -> RUNNING -> AGGREGATING -> GATING -> COMPLETED(PASS|FAIL|ERROR)

and every scanner through ``SCHEDULED -> RUNNING -> DONE|FAILED``.
Transitions not listed in the tables below raise InvalidTransition.

Scanner failures degrade that scanner's contribution to empty. A failure
of a *required* scanner cancels the other scanners and completes the run
with FAIL / REQUIRED_SCANNER_FAILED without aggregating.

An artifact store failure while publishing ends the run with ERROR.
"""

from __future__ import annotations

import asyncio
import json
import logging
import tempfile
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from secgate.core.config import settings
from secgate.core.errors import (
    AggregationConflict,
    ArtifactStoreError,
    DeployError,
    FailureKind,
    InvalidTransition,
    MalformedReport,
    PolicyInvalid,
    PolicyUnsatisfiable,
    RequiredScannerFailed,
    ScannerError,
    ScannerFailure,
    ScannerTimeout,
    ScannerUnavailable,
)
from secgate.domain.models import (
    CombinedReport,
    Finding,
    GateResult,
    RawReport,
    RunOutcome,
    RunState,
    ScannerKind,
    ScannerState,
    ScanRequest,
)
from secgate.domain.schemas import Policy
from secgate.normalizers.registry import NormalizerRegistry
from secgate.scanners.registry import ScannerRegistry
from secgate.services import sarif_service
from secgate.services.aggregation_service import combine
from secgate.services.artifact_store import ArtifactRef, ArtifactStore
from secgate.services.deploy_service import DeploymentHandle, DeployTrigger
from secgate.services.gate_service import evaluate, load_policy

logger = logging.getLogger(__name__)

RUN_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.PENDING: frozenset({RunState.RUNNING, RunState.COMPLETED}),
    RunState.RUNNING: frozenset({RunState.AGGREGATING, RunState.COMPLETED}),
    RunState.AGGREGATING: frozenset({RunState.GATING, RunState.COMPLETED}),
    RunState.GATING: frozenset({RunState.COMPLETED}),
    RunState.COMPLETED: frozenset(),
}

SCANNER_TRANSITIONS: dict[ScannerState, frozenset[ScannerState]] = {
    # SCHEDULED -> FAILED covers scanners cancelled before they started
    ScannerState.SCHEDULED: frozenset({ScannerState.RUNNING, ScannerState.FAILED}),
    ScannerState.RUNNING: frozenset({ScannerState.DONE, ScannerState.FAILED}),
    ScannerState.DONE: frozenset(),
    ScannerState.FAILED: frozenset(),
}


@dataclass
class ScannerOutcome:
    kind: ScannerKind
    required: bool = False
    state: ScannerState = ScannerState.SCHEDULED
    failure: FailureKind | None = None
    error: str | None = None
    artifact: ArtifactRef | None = None
    findings: list[Finding] = field(default_factory=list)

    def transition(self, to: ScannerState) -> None:
        if to not in SCANNER_TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.kind.value}:{self.state.value}", to.value)
        self.state = to

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "required": self.required,
            "state": self.state.value,
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
            "artifact": self.artifact.to_dict() if self.artifact else None,
            "findings": len(self.findings),
        }


@dataclass
class RunResult:
    run_id: str
    request: ScanRequest
    state: RunState = RunState.PENDING
    outcome: RunOutcome | None = None
    reason: FailureKind | None = None
    message: str = ""
    scanners: dict[ScannerKind, ScannerOutcome] = field(default_factory=dict)
    report: CombinedReport | None = None
    gate: GateResult | None = None
    deployment: DeploymentHandle | None = None
    artifacts: dict[str, ArtifactRef] = field(default_factory=dict)
    history: list[RunState] = field(default_factory=lambda: [RunState.PENDING])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    def transition(self, to: RunState) -> None:
        if to not in RUN_TRANSITIONS[self.state]:
            raise InvalidTransition(self.state.value, to.value)
        logger.info("Run %s -> %s", self.state.value, to.value, extra={"run_id": self.run_id, "state": to.value})
        self.state = to
        self.history.append(to)

    def complete(self, outcome: RunOutcome, reason: FailureKind | None = None, message: str = "") -> None:
        self.transition(RunState.COMPLETED)
        self.outcome = outcome
        self.reason = reason
        self.message = message

    def contributions(self) -> list[tuple[ScannerKind, list[Finding]]]:
        """Findings of every scanner that produced a report; failed scanners are absent."""
        return [(k, o.findings) for k, o in self.scanners.items() if o.state is ScannerState.DONE]

    def to_dict(self) -> dict[str, Any]:
        req = self.request
        return {
            "run_id": self.run_id,
            "request": {
                "target": req.target,
                "target_url": req.target_url,
                "source_dir": str(req.source_dir) if req.source_dir else None,
                "scanners": [k.value for k in req.scanners],
                "required": sorted(k.value for k in req.required),
                "policy": req.policy,
                "commit": req.commit,
            },
            "state": self.state.value,
            "outcome": self.outcome.value if self.outcome else None,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "history": [s.value for s in self.history],
            "scanners": [o.to_dict() for o in self.scanners.values()],
            "report": self.report.to_dict() if self.report else None,
            "gate": self.gate.to_dict() if self.gate else None,
            "deployment": self.deployment.to_dict() if self.deployment else None,
            "artifacts": {k: v.to_dict() for k, v in self.artifacts.items()},
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class Orchestrator:
    def __init__(
        self,
        scanners: ScannerRegistry,
        normalizers: NormalizerRegistry,
        store: ArtifactStore,
        deploy_trigger: DeployTrigger | None = None,
        timeouts: dict[ScannerKind, float] | None = None,
        default_timeout_sec: float | None = None,
        policy_loader: Callable[[str], Policy] = load_policy,
        aggregator: Callable[..., CombinedReport] = combine,
        gate: Callable[[CombinedReport, Policy], GateResult] = evaluate,
    ):
        self.scanners = scanners
        self.normalizers = normalizers
        self.store = store
        self.deploy_trigger = deploy_trigger
        self.timeouts = dict(timeouts or {})
        self.default_timeout_sec = default_timeout_sec
        self.policy_loader = policy_loader
        self.aggregator = aggregator
        self.gate = gate

    def timeout_for(self, kind: ScannerKind) -> float:
        if kind in self.timeouts:
            return self.timeouts[kind]
        if self.default_timeout_sec is not None:
            return self.default_timeout_sec
        return settings.SCANNER_TIMEOUT_SEC

    async def run(self, request: ScanRequest) -> RunResult:
        run = RunResult(run_id=uuid.uuid4().hex, request=request)
        for kind in request.scanners:
            run.scanners[kind] = ScannerOutcome(kind=kind, required=kind in request.required)

        logger.info(
            "Starting run for %s (scanners=%s, required=%s, commit=%s)",
            request.target,
            ",".join(k.value for k in request.scanners),
            ",".join(sorted(k.value for k in request.required)) or "-",
            request.commit or "-",
            extra={"run_id": run.run_id},
        )

        try:
            policy = self.policy_loader(request.policy)
        except PolicyInvalid as e:
            run.complete(RunOutcome.ERROR, e.kind, str(e))
            return self._finish(run)

        try:
            await self._execute(run, policy)
        except ArtifactStoreError as e:
            logger.error("Artifact store failed: %s", e, extra={"run_id": run.run_id})
            run.complete(RunOutcome.ERROR, e.kind, str(e))
        return self._finish(run)

    async def _execute(self, run: RunResult, policy: Policy) -> None:
        # Phase 1: scanners (concurrent)
        run.transition(RunState.RUNNING)
        failure = await self._run_scanners(run)
        if failure is not None:
            run.complete(RunOutcome.FAIL, failure.kind, str(failure))
            return

        # Phase 2: combine + publish
        run.transition(RunState.AGGREGATING)
        try:
            report = self.aggregator(run.contributions())
        except AggregationConflict as e:
            logger.error("Aggregation conflict: %s", e, extra={"run_id": run.run_id})
            run.complete(RunOutcome.ERROR, e.kind, str(e))
            return

        run.report = report
        run.artifacts["combined"] = self._publish(
            f"{run.run_id}/reports/combined.sarif",
            sarif_service.dumps(sarif_service.render(report)),
        )

        # Phase 3: gate
        run.transition(RunState.GATING)
        try:
            gate = self.gate(report, policy)
        except PolicyUnsatisfiable as e:
            run.complete(RunOutcome.ERROR, e.kind, str(e))
            return

        run.gate = gate
        run.artifacts["gate"] = self._publish(
            f"{run.run_id}/reports/gate.json",
            json.dumps(gate.to_dict(), indent=2).encode("utf-8"),
        )

        if not gate.passed:
            run.complete(
                RunOutcome.FAIL,
                None,
                f"{len(gate.failing)} finding(s) at or above {gate.threshold.value}",
            )
            return

        run.complete(RunOutcome.PASS, None, "Quality gate passed")

        # Phase 4: redeploy, only after a pass
        await self._deploy(run)

    def _publish(self, name: str, data: bytes) -> ArtifactRef:
        try:
            return self.store.put(name, data)
        except OSError as e:
            raise ArtifactStoreError(f"Cannot store artifact {name!r}: {e}") from e

    # ── scanners ──────────────────────────────────────────────
    async def _run_scanners(self, run: RunResult) -> RequiredScannerFailed | None:
        tasks = {
            asyncio.create_task(self._run_one(run, kind), name=f"{run.run_id}:{kind.value}"): kind
            for kind in run.request.scanners
        }
        pending = set(tasks)
        failure: RequiredScannerFailed | None = None

        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    exc = task.exception()
                    if exc is not None:
                        raise exc

                    outcome = run.scanners[tasks[task]]
                    if outcome.required and outcome.state is ScannerState.FAILED and failure is None:
                        failure = RequiredScannerFailed(outcome.kind.value, outcome.error)

                if failure is not None and pending:
                    logger.warning(
                        "%s; cancelling %d in-flight scanner(s)",
                        failure,
                        len(pending),
                        extra={"run_id": run.run_id},
                    )
                    await _cancel_all(pending)
                    pending = set()
        except BaseException:
            await _cancel_all([t for t in tasks if not t.done()])
            raise

        for kind, outcome in run.scanners.items():
            if outcome.state in (ScannerState.SCHEDULED, ScannerState.RUNNING):
                self._mark_cancelled(run, kind)

        return failure

    async def _run_one(self, run: RunResult, kind: ScannerKind) -> None:
        adapter = self.scanners.get(kind)
        normalizer = self.normalizers.by_kind(kind)
        if adapter is None or normalizer is None:
            self._fail(run, kind, ScannerUnavailable(kind.value, "no adapter/normalizer registered"))
            return

        outcome = run.scanners[kind]
        outcome.transition(ScannerState.RUNNING)
        timeout = self.timeout_for(kind)
        logger.info("Running %s ...", kind.value, extra={"run_id": run.run_id, "scanner": kind.value})

        try:
            with tempfile.TemporaryDirectory(prefix=f"secgate-{kind.value}-") as tmp:
                raw = await asyncio.wait_for(adapter.run(run.request, Path(tmp)), timeout)

            # publish the raw report, then normalize what the store hands back
            ref = self.store.put(f"{run.run_id}/raw/{kind.value}/{raw.filename}", raw.content)
            outcome.artifact = ref
            findings = normalizer.normalize(replace(raw, content=self.store.get(ref)))
        except asyncio.TimeoutError:
            self._fail(run, kind, ScannerTimeout(kind.value, f"timed out after {timeout:g}s"))
            return
        except ScannerFailure as e:
            self._fail(run, kind, e)
            return
        except asyncio.CancelledError:
            self._mark_cancelled(run, kind)
            raise
        except Exception as e:
            logger.exception("Scanner %s crashed", kind.value, extra={"run_id": run.run_id, "scanner": kind.value})
            self._fail(run, kind, ScannerError(kind.value, f"{type(e).__name__}: {e}"))
            return

        outcome.findings = findings
        outcome.transition(ScannerState.DONE)
        logger.info(
            "%s done: %d finding(s)",
            kind.value,
            len(findings),
            extra={"run_id": run.run_id, "scanner": kind.value},
        )

    def _fail(self, run: RunResult, kind: ScannerKind, err: ScannerFailure) -> None:
        outcome = run.scanners[kind]
        outcome.failure = err.kind
        outcome.error = err.detail
        outcome.findings = []
        outcome.transition(ScannerState.FAILED)
        logger.warning(
            "%s failed (%s%s): %s",
            kind.value,
            err.kind.value if err.kind else "error",
            ", required" if outcome.required else "",
            err.detail,
            extra={"run_id": run.run_id, "scanner": kind.value},
        )

    def _mark_cancelled(self, run: RunResult, kind: ScannerKind) -> None:
        outcome = run.scanners[kind]
        if outcome.state in (ScannerState.DONE, ScannerState.FAILED):
            return
        outcome.failure = FailureKind.CANCELLED
        outcome.error = "cancelled"
        outcome.findings = []
        outcome.transition(ScannerState.FAILED)

    # ── deploy / persist ──────────────────────────────────────
    async def _deploy(self, run: RunResult) -> None:
        if self.deploy_trigger is None:
            logger.info("No deploy trigger configured; skipping redeploy", extra={"run_id": run.run_id})
            return
        try:
            run.deployment = await self.deploy_trigger.deploy(run.request.target)
        except DeployError as e:
            # gate passed but infrastructure failed: surface as ERROR, not FAIL
            logger.error("Redeploy failed: %s", e, extra={"run_id": run.run_id})
            run.outcome = RunOutcome.ERROR
            run.reason = e.kind
            run.message = str(e)

    def _finish(self, run: RunResult) -> RunResult:
        run.finished_at = datetime.now(timezone.utc)
        name = f"{run.run_id}/run.json"
        run.artifacts["run"] = self.store.ref(name)
        try:
            self._publish(name, json.dumps(run.to_dict(), indent=2).encode("utf-8"))
        except ArtifactStoreError as e:
            # the run itself completed; only its summary could not be kept
            logger.error("Cannot persist run summary: %s", e, extra={"run_id": run.run_id})
            del run.artifacts["run"]
            run.outcome = RunOutcome.ERROR
            run.reason = e.kind
            run.message = str(e)

        logger.info(
            "Run completed: %s%s - %s",
            run.outcome.value if run.outcome else "?",
            f" ({run.reason.value})" if run.reason else "",
            run.message,
            extra={"run_id": run.run_id},
        )
        return run


async def _cancel_all(tasks) -> None:
    for t in tasks:
        t.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


@dataclass
class OfflineGate:
    """Result of gating reports that were produced outside a run."""

    report: CombinedReport
    gate: GateResult
    skipped: dict[ScannerKind, str]


def gate_reports(
    normalizers: NormalizerRegistry,
    reports: dict[ScannerKind, tuple[str, bytes]],
    policy: Policy,
) -> OfflineGate:
    """Normalize -> combine -> gate already-downloaded reports.

    ``reports`` maps each scanner to ``(filename, content)``. Malformed
    reports are skipped (empty contribution) and listed in ``skipped``;
    PolicyUnsatisfiable propagates.
    """
    contributions: list[tuple[ScannerKind, list[Finding]]] = []
    skipped: dict[ScannerKind, str] = {}

    for kind, (filename, content) in reports.items():
        normalizer = normalizers.by_kind(kind)
        if normalizer is None:
            skipped[kind] = "no normalizer registered"
            continue
        try:
            findings = normalizer.normalize(RawReport(kind=kind, content=content, filename=filename))
        except MalformedReport as e:
            logger.warning("Skipping %s report %s: %s", kind.value, filename, e.detail)
            skipped[kind] = e.detail
            continue
        contributions.append((kind, findings))

    report = combine(contributions)
    return OfflineGate(report=report, gate=evaluate(report, policy), skipped=skipped)
