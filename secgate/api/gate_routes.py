from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from secgate.core.containers import build_normalizer_registry
from secgate.core.errors import PolicyInvalid, PolicyUnsatisfiable
from secgate.domain.models import ScannerKind
from secgate.domain.schemas import Policy
from secgate.services.gate_service import default_policy
from secgate.services.orchestrator import gate_reports

router = APIRouter(prefix="/api", tags=["gate"])

_normalizers = build_normalizer_registry()

_DEFAULT_NAMES = {
    ScannerKind.CODEQL: "codeql.sarif",
    ScannerKind.SNYK: "snyk.sarif",
    ScannerKind.ZAP: "zap-results.xml",
}


class GateRequest(BaseModel):
    """Raw scanner reports to gate without running the scanners."""

    reports: dict[ScannerKind, str] = Field(
        ...,
        description="Native report text per scanner (SARIF for codeql/snyk, XML for zap).",
    )
    policy: Policy | None = Field(None, description="Gate policy. If omitted, the configured default applies.")


class GateResponse(BaseModel):
    passed: bool
    outcome: str = Field(..., description="PASS or FAIL.")
    threshold: str
    summary: dict[str, Any]
    failing: list[dict[str, Any]]
    skipped: dict[str, str] = Field(..., description="Reports that could not be parsed, by scanner.")


@router.post(
    "/gate",
    response_model=GateResponse,
    summary="Gate existing reports",
    response_description="Gate decision over the combined findings",
)
def gate(req: GateRequest) -> dict[str, Any]:
    """Normalize, combine and gate reports produced elsewhere (e.g. CI
    artifacts). Returns **422** when the policy cannot be satisfied by the
    reports supplied, which is distinct from a failing gate."""
    try:
        policy = req.policy or default_policy()
    except PolicyInvalid as e:
        raise HTTPException(status_code=400, detail=str(e))

    reports = {k: (_DEFAULT_NAMES[k], text.encode("utf-8")) for k, text in req.reports.items()}
    try:
        result = gate_reports(_normalizers, reports, policy)
    except PolicyUnsatisfiable as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "passed": result.gate.passed,
        "outcome": "PASS" if result.gate.passed else "FAIL",
        "threshold": result.gate.threshold.value,
        "summary": result.report.summary(),
        "failing": [f.to_dict() for f in result.gate.failing],
        "skipped": {k.value: v for k, v in result.skipped.items()},
    }
