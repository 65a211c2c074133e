from __future__ import annotations

import json
import re
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from secgate.core.containers import build_orchestrator, build_scan_request
from secgate.core.errors import ArtifactNotFound
from secgate.domain.schemas import RunConfig

router = APIRouter(prefix="/api", tags=["runs"])

# Build once at module level
_orchestrator = build_orchestrator()

_RUN_ID = re.compile(r"^[0-9a-f]{32}$")


# ── Response schemas ──────────────────────────────────────────────
class RunResponse(BaseModel):
    """Terminal state of a pipeline run."""

    run_id: str
    state: str
    outcome: str | None = Field(None, description="PASS, FAIL or ERROR.")
    reason: str | None = Field(None, description="Failure kind when the run did not simply pass or fail the gate.")
    message: str
    history: list[str]
    request: dict[str, Any]
    scanners: list[dict[str, Any]] = Field(..., description="Per-scanner state, failure and finding count.")
    report: dict[str, Any] | None = Field(None, description="Combined, deduplicated findings.")
    gate: dict[str, Any] | None = None
    deployment: dict[str, Any] | None = None
    artifacts: dict[str, dict[str, str]]
    started_at: str
    finished_at: str | None = None


# ── Endpoints ─────────────────────────────────────────────────────
@router.get(
    "/scanners",
    summary="List available scanners",
    response_description="Names of registered scanner adapters",
)
def list_scanners() -> list[str]:
    """Return the scanners this service can run: **codeql** (SAST),
    **snyk** (SCA) and **zap** (DAST)."""
    return [k.value for k in _orchestrator.scanners.list()]


@router.post(
    "/runs",
    response_model=RunResponse,
    summary="Run the security pipeline",
    response_description="Terminal run state with combined report and gate result",
)
async def create_run(cfg: RunConfig) -> dict[str, Any]:
    """Run the selected scanners, combine their reports, evaluate the
    quality gate and redeploy the target if the gate passes.

    Scanner failures degrade to empty contributions unless the scanner is
    listed in `required`. The HTTP status is 200 for every completed run;
    read `outcome` for PASS / FAIL / ERROR.
    """
    try:
        request = build_scan_request(cfg)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await _orchestrator.run(request)
    return result.to_dict()


def _load_artifact(run_id: str, name: str) -> Any:
    if not _RUN_ID.match(run_id):
        raise HTTPException(status_code=404, detail="Run not found")
    store = _orchestrator.store
    try:
        data = store.get(store.ref(f"{run_id}/{name}"))
    except ArtifactNotFound:
        raise HTTPException(status_code=404, detail=f"No {name} for run {run_id}")
    return json.loads(data.decode("utf-8"))


@router.get(
    "/runs/{run_id}",
    response_model=RunResponse,
    summary="Get run result",
    response_description="Persisted run summary",
)
def get_run(run_id: str) -> dict[str, Any]:
    """Retrieve the persisted `run.json` of a previous run."""
    return _load_artifact(run_id, "run.json")


@router.get(
    "/runs/{run_id}/report",
    summary="Get combined SARIF report",
    response_description="SARIF document with one run per contributing scanner",
)
def get_run_report(run_id: str) -> dict[str, Any]:
    """Retrieve the combined SARIF report published by a run.

    Only runs that reached aggregation have one.
    """
    return _load_artifact(run_id, "reports/combined.sarif")
