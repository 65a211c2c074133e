import json

import pytest

from secgate.core.errors import MalformedReport
from secgate.domain.models import RawReport, ScannerKind, Severity
from secgate.normalizers.sarif_normalizer import CodeQLNormalizer, SnykNormalizer


def _raw(kind, content) -> RawReport:
    if isinstance(content, dict):
        content = json.dumps(content).encode("utf-8")
    return RawReport(kind=kind, content=content, filename="x.sarif")


def _doc(result: dict, rules: list | None = None) -> dict:
    return {"version": "2.1.0", "runs": [{"tool": {"driver": {"name": "t", "rules": rules or []}}, "results": [result]}]}


def test_codeql_normalizer_resolves_rule_from_extensions(codeql_sarif):
    findings = CodeQLNormalizer().normalize(_raw(ScannerKind.CODEQL, codeql_sarif))

    assert len(findings) == 1
    f = findings[0]
    assert f.rule_id == "js/sql-injection"
    assert f.location == "routes/search.ts:23"
    assert f.source_scanner is ScannerKind.CODEQL
    # security-severity 8.8 -> HIGH
    assert f.severity is Severity.HIGH
    assert f.extra["security_severity"] == 8.8
    assert f.extra["uri"] == "routes/search.ts"
    assert f.extra["line"] == 23


def test_snyk_normalizer_maps_levels(snyk_sarif):
    findings = SnykNormalizer().normalize(_raw(ScannerKind.SNYK, snyk_sarif))

    by_rule = {f.rule_id: f for f in findings}
    assert by_rule["SNYK-JS-LODASH-567746"].severity is Severity.HIGH
    assert by_rule["SNYK-JS-MINIMIST-559764"].severity is Severity.LOW
    assert by_rule["SNYK-JS-LODASH-567746"].location == "package.json"
    assert all(f.source_scanner is ScannerKind.SNYK for f in findings)


def test_missing_severity_defaults_to_info():
    doc = _doc({"ruleId": "R1", "locations": [{"physicalLocation": {"artifactLocation": {"uri": "a.js"}}}]})
    [f] = SnykNormalizer().normalize(_raw(ScannerKind.SNYK, doc))
    assert f.severity is Severity.INFO
    # message falls back to the rule id
    assert f.message == "R1"


def test_rule_id_resolved_from_rule_index():
    doc = _doc(
        {"ruleIndex": 1, "level": "warning", "locations": [{"physicalLocation": {"artifactLocation": {"uri": "b.js"}}}]},
        rules=[{"id": "first"}, {"id": "second", "shortDescription": {"text": "desc"}}],
    )
    [f] = CodeQLNormalizer().normalize(_raw(ScannerKind.CODEQL, doc))
    assert f.rule_id == "second"
    assert f.severity is Severity.MEDIUM
    assert f.message == "desc"


def test_logical_location_is_used_when_no_physical_location():
    doc = _doc({"ruleId": "R", "locations": [{"logicalLocations": [{"fullyQualifiedName": "pkg.mod.fn"}]}]})
    [f] = CodeQLNormalizer().normalize(_raw(ScannerKind.CODEQL, doc))
    assert f.location == "pkg.mod.fn"


def test_cvss_thresholds():
    rules = [{"id": f"R{i}", "properties": {"security-severity": s}} for i, s in enumerate(["9.8", "4.0", "0.1", "0"])]
    results = [
        {"ruleId": f"R{i}", "locations": [{"physicalLocation": {"artifactLocation": {"uri": "a"}}}]} for i in range(4)
    ]
    doc = {"runs": [{"tool": {"driver": {"rules": rules}}, "results": results}]}

    sev = {f.rule_id: f.severity for f in CodeQLNormalizer().normalize(_raw(ScannerKind.CODEQL, doc))}
    assert sev == {"R0": Severity.CRITICAL, "R1": Severity.MEDIUM, "R2": Severity.LOW, "R3": Severity.INFO}


def test_empty_report_yields_no_findings():
    assert CodeQLNormalizer().normalize(_raw(ScannerKind.CODEQL, b"")) == []
    assert CodeQLNormalizer().normalize(_raw(ScannerKind.CODEQL, {"version": "2.1.0", "runs": []})) == []


def test_missing_rule_id_is_malformed():
    doc = _doc({"locations": [{"physicalLocation": {"artifactLocation": {"uri": "a.js"}}}]})
    with pytest.raises(MalformedReport, match="ruleId"):
        SnykNormalizer().normalize(_raw(ScannerKind.SNYK, doc))


def test_missing_location_is_malformed():
    doc = _doc({"ruleId": "R1", "locations": []})
    with pytest.raises(MalformedReport, match="location"):
        SnykNormalizer().normalize(_raw(ScannerKind.SNYK, doc))


@pytest.mark.parametrize("content", [b"{not json", b"[1, 2]", b'{"runs": {}}'])
def test_unparseable_report_is_malformed(content):
    with pytest.raises(MalformedReport) as exc:
        CodeQLNormalizer().normalize(_raw(ScannerKind.CODEQL, content))
    assert exc.value.scanner == "codeql"


_LOC = [{"physicalLocation": {"artifactLocation": {"uri": "a.js"}}}]


@pytest.mark.parametrize(
    "doc",
    [
        {"runs": [{"results": [{"ruleId": "R", "message": "plain string", "locations": _LOC}]}]},
        {"runs": [{"tool": []}]},
        {"runs": [{"tool": {"driver": {"rules": {"id": "R"}}}}]},
        {"runs": [{"tool": {"extensions": ["codeql/js"]}}]},
        {"runs": [{"results": "R"}]},
        {"runs": [{"results": [{"ruleId": "R", "locations": [{"physicalLocation": "x"}]}]}]},
        {"runs": [{"results": [{"ruleId": "R", "locations": [{"physicalLocation": {"artifactLocation": 1}}]}]}]},
        {"runs": [{"results": [{"ruleId": "R", "locations": [{"physicalLocation": {"artifactLocation": {"uri": "a"}, "region": 3}}]}]}]},
        {"runs": [{"results": [{"ruleId": "R", "locations": [{"logicalLocations": ["pkg.fn"]}]}]}]},
        {"runs": [{"results": [{"ruleId": "R", "rule": "R", "locations": _LOC}]}]},
        {"runs": [{"results": [{"ruleId": ["R"], "locations": _LOC}]}]},
        {"runs": [{"results": [{"ruleId": "R", "locations": "a.js"}]}]},
    ],
)
def test_wrongly_typed_sarif_members_are_malformed(doc):
    with pytest.raises(MalformedReport) as exc:
        SnykNormalizer().normalize(_raw(ScannerKind.SNYK, doc))
    assert exc.value.scanner == "snyk"
