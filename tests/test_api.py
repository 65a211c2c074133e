"""Tests for the HTTP API (health, runs, gate, OpenAPI docs)."""

import json

import pytest

from secgate.core.config import settings
from secgate.domain.models import Finding, RawReport, ScannerKind, Severity
from secgate.normalizers.base import ReportNormalizer
from secgate.normalizers.registry import NormalizerRegistry
from secgate.scanners.base import ScannerAdapter
from secgate.scanners.registry import ScannerRegistry
from secgate.services.artifact_store import LocalArtifactStore
from secgate.services.orchestrator import Orchestrator


class _Adapter(ScannerAdapter):
    def __init__(self, kind):
        self._kind = kind

    def kind(self):
        return self._kind

    async def run(self, request, workdir):
        return RawReport(kind=self._kind, content=b"{}", filename="report.sarif")


class _Normalizer(ReportNormalizer):
    def __init__(self, kind, severity):
        self._kind = kind
        self.severity = severity

    def kind(self):
        return self._kind

    def normalize(self, raw):
        return [
            Finding(
                rule_id=f"{self._kind.value}-rule",
                severity=self.severity,
                location="package.json",
                message="found",
                source_scanner=self._kind,
            )
        ]


@pytest.fixture
def fake_pipeline(monkeypatch):
    def install(severity=Severity.LOW):
        orch = Orchestrator(
            scanners=ScannerRegistry([_Adapter(ScannerKind.SNYK), _Adapter(ScannerKind.CODEQL)]),
            normalizers=NormalizerRegistry(
                [_Normalizer(ScannerKind.SNYK, severity), _Normalizer(ScannerKind.CODEQL, Severity.INFO)]
            ),
            store=LocalArtifactStore(),
        )
        monkeypatch.setattr("secgate.api.run_routes._orchestrator", orch)
        return orch

    return install


# ── health / docs ─────────────────────────────────────────────


def test_health_reports_healthy(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"
    assert "version" in res.json()


def test_openapi_has_tags_and_summaries(client):
    schema = client.get("/openapi.json").json()
    assert schema["info"]["title"] == "secgate"
    tags = {t["name"] for t in schema["tags"]}
    assert {"runs", "gate", "health"} <= tags
    for path, methods in schema["paths"].items():
        for method, details in methods.items():
            assert "summary" in details, f"{method.upper()} {path} missing summary"


def test_swagger_ui_accessible(client):
    r = client.get("/docs")
    assert r.status_code == 200
    assert "swagger-ui" in r.text.lower()


# ── runs ──────────────────────────────────────────────────────


def test_list_scanners(client):
    assert client.get("/api/scanners").json() == ["codeql", "snyk", "zap"]


def test_create_run_passes_and_persists(client, fake_pipeline):
    fake_pipeline(Severity.LOW)

    res = client.post("/api/runs", json={"target": "img", "scanners": ["snyk", "codeql"], "required": []})

    assert res.status_code == 200
    body = res.json()
    assert body["outcome"] == "PASS"
    assert body["state"] == "COMPLETED"
    assert body["report"]["scanners"] == ["codeql", "snyk"]

    run_id = body["run_id"]
    again = client.get(f"/api/runs/{run_id}").json()
    assert again["outcome"] == "PASS"
    assert again["history"][-1] == "COMPLETED"

    sarif = client.get(f"/api/runs/{run_id}/report").json()
    assert sarif["version"] == "2.1.0"
    assert len(sarif["runs"]) == 2


def test_create_run_fails_gate(client, fake_pipeline):
    fake_pipeline(Severity.CRITICAL)

    body = client.post("/api/runs", json={"target": "img", "scanners": ["snyk"], "required": []}).json()

    assert body["outcome"] == "FAIL"
    assert body["gate"]["failing"][0]["rule_id"] == "snyk-rule"


def test_create_run_rejects_required_scanner_not_enabled(client, fake_pipeline):
    fake_pipeline()
    res = client.post("/api/runs", json={"target": "img", "scanners": ["snyk"], "required": ["zap"]})
    assert res.status_code == 400
    assert "not enabled" in res.json()["detail"]


def test_create_run_rejects_unknown_scanner(client):
    res = client.post("/api/runs", json={"target": "img", "scanners": ["nessus"]})
    assert res.status_code == 422


def test_unknown_run_is_404(client, fake_pipeline):
    fake_pipeline()
    assert client.get("/api/runs/" + "0" * 32).status_code == 404
    assert client.get("/api/runs/not-a-run-id").status_code == 404
    assert client.get("/api/runs/" + "0" * 32 + "/report").status_code == 404


# ── gate ──────────────────────────────────────────────────────


def test_gate_endpoint_fails_on_high(client, codeql_sarif, snyk_sarif, zap_xml):
    res = client.post(
        "/api/gate",
        json={
            "reports": {
                "codeql": codeql_sarif.decode(),
                "snyk": snyk_sarif.decode(),
                "zap": zap_xml.decode(),
            },
            "policy": {"maxSeverity": "HIGH"},
        },
    )
    assert res.status_code == 200
    body = res.json()
    assert body["passed"] is False
    assert body["outcome"] == "FAIL"
    assert {f["rule_id"] for f in body["failing"]} == {"js/sql-injection", "SNYK-JS-LODASH-567746"}
    assert body["summary"]["by_scanner"] == {"codeql": 1, "snyk": 2, "zap": 3}


def test_gate_endpoint_uses_default_policy(client, zap_xml, monkeypatch):
    monkeypatch.setattr(settings, "GATE_MAX_SEVERITY", "HIGH")
    body = client.post("/api/gate", json={"reports": {"zap": zap_xml.decode()}}).json()
    assert body["passed"] is True
    assert body["threshold"] == "HIGH"


def test_gate_endpoint_skips_malformed_report(client, snyk_sarif):
    body = client.post(
        "/api/gate",
        json={"reports": {"snyk": snyk_sarif.decode(), "codeql": "{not json"}, "policy": {"maxSeverity": "CRITICAL"}},
    ).json()
    assert body["passed"] is True
    assert "codeql" in body["skipped"]


def test_gate_endpoint_skips_wrongly_typed_sarif(client, zap_xml):
    loc = {"physicalLocation": {"artifactLocation": {"uri": "package.json"}}}
    bad = json.dumps({"runs": [{"results": [{"ruleId": "R", "message": "plain string", "locations": [loc]}]}]})
    res = client.post("/api/gate", json={"reports": {"snyk": bad, "zap": zap_xml.decode()}})
    assert res.status_code == 200
    body = res.json()
    assert "result.message is not an object" in body["skipped"]["snyk"]
    assert body["summary"]["by_scanner"] == {"zap": 3}


def test_gate_endpoint_unsatisfiable_policy_is_422(client, snyk_sarif):
    res = client.post(
        "/api/gate",
        json={"reports": {"snyk": snyk_sarif.decode()}, "policy": {"minScannersRequired": 3}},
    )
    assert res.status_code == 422
    assert "requires 3" in res.json()["detail"]


def test_gate_endpoint_invalid_default_policy_is_400(client, monkeypatch):
    monkeypatch.setattr(settings, "GATE_MAX_SEVERITY", "SEVERE")
    res = client.post("/api/gate", json={"reports": {}})
    assert res.status_code == 400
