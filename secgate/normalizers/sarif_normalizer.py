"""SARIF 2.1.0 normalizer shared by CodeQL and Snyk.

Both tools emit SARIF, but they put rule metadata in different places:
CodeQL references rules in ``tool.extensions`` through ``result.rule``,
Snyk keeps them in ``tool.driver.rules`` and sets ``ruleId`` directly.
"""

from __future__ import annotations

import json
from typing import Any

from secgate.core.errors import MalformedReport
from secgate.domain.models import Finding, RawReport, ScannerKind, Severity

from .base import ReportNormalizer

_LEVELS = {
    "error": Severity.HIGH,
    "warning": Severity.MEDIUM,
    "note": Severity.LOW,
    "none": Severity.INFO,
}


class _BadShape(ValueError):
    """A SARIF member has the wrong JSON type."""


class SarifNormalizer(ReportNormalizer):
    def normalize(self, raw: RawReport) -> list[Finding]:
        scanner = self.kind().value
        text = raw.text().strip()
        if not text:
            return []

        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedReport(scanner, f"not valid JSON: {e}") from e

        if not isinstance(doc, dict) or not isinstance(doc.get("runs", []), list):
            raise MalformedReport(scanner, "not a SARIF log (expected an object with a runs array)")

        try:
            return [f for run in doc.get("runs") or [] for f in self._run(run)]
        except _BadShape as e:
            raise MalformedReport(scanner, str(e)) from e

    def _run(self, run: Any) -> list[Finding]:
        scanner = self.kind().value
        if not isinstance(run, dict):
            raise _BadShape("run entry is not an object")
        rules = _RuleIndex(run)

        out: list[Finding] = []
        for res in _arr(run.get("results"), "results"):
            if not isinstance(res, dict):
                raise _BadShape("result entry is not an object")
            rule_id, rule = rules.resolve(res)
            if not rule_id:
                raise MalformedReport(scanner, "result without ruleId")

            location, loc_extra = _location(res)
            if not location:
                raise MalformedReport(scanner, f"result {rule_id} has no location")

            severity, sev_extra = _severity(res, rule)
            msg = (
                _obj(res.get("message"), "result.message").get("text")
                or _obj(rule.get("shortDescription"), "rule.shortDescription").get("text")
                or rule_id
            )

            out.append(
                Finding(
                    rule_id=rule_id,
                    severity=severity,
                    location=location,
                    message=str(msg),
                    source_scanner=self.kind(),
                    extra={**loc_extra, **sev_extra},
                )
            )
        return out


class CodeQLNormalizer(SarifNormalizer):
    def kind(self) -> ScannerKind:
        return ScannerKind.CODEQL


class SnykNormalizer(SarifNormalizer):
    def kind(self) -> ScannerKind:
        return ScannerKind.SNYK


def _obj(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _BadShape(f"{what} is not an object")
    return value


def _arr(value: Any, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise _BadShape(f"{what} is not an array")
    return value


class _RuleIndex:
    def __init__(self, run: dict[str, Any]):
        tool = _obj(run.get("tool"), "run.tool")
        driver = _obj(tool.get("driver"), "tool.driver")
        self.driver = _arr(driver.get("rules"), "driver.rules")
        self.extensions = [
            _arr(_obj(ext, "tool.extensions entry").get("rules"), "extension.rules")
            for ext in _arr(tool.get("extensions"), "tool.extensions")
        ]
        self.by_id: dict[str, dict] = {}
        for table in [self.driver, *self.extensions]:
            for r in table:
                if isinstance(r, dict) and isinstance(r.get("id"), str) and r["id"]:
                    self.by_id.setdefault(r["id"], r)

    def resolve(self, res: dict[str, Any]) -> tuple[str | None, dict]:
        ref = _obj(res.get("rule"), "result.rule")
        component = _obj(ref.get("toolComponent"), "rule.toolComponent").get("index")
        index = ref.get("index", res.get("ruleIndex"))

        table = self.driver
        if isinstance(component, int) and 0 <= component < len(self.extensions):
            table = self.extensions[component]

        rule: dict = {}
        if isinstance(index, int) and 0 <= index < len(table) and isinstance(table[index], dict):
            rule = table[index]

        rule_id = res.get("ruleId") or ref.get("id") or rule.get("id")
        if rule_id is not None and not isinstance(rule_id, str):
            raise _BadShape("ruleId is not a string")
        if rule_id and not rule:
            rule = self.by_id.get(rule_id, {})
        return rule_id, rule


def _location(res: dict[str, Any]) -> tuple[str | None, dict]:
    for loc in _arr(res.get("locations"), "result.locations"):
        loc = _obj(loc, "location")
        phys = _obj(loc.get("physicalLocation"), "physicalLocation")
        uri = _obj(phys.get("artifactLocation"), "artifactLocation").get("uri")
        if uri:
            if not isinstance(uri, str):
                raise _BadShape("artifactLocation.uri is not a string")
            line = _obj(phys.get("region"), "region").get("startLine")
            if isinstance(line, int):
                return f"{uri}:{line}", {"uri": uri, "line": line}
            return uri, {"uri": uri}

        for logical in _arr(loc.get("logicalLocations"), "logicalLocations"):
            logical = _obj(logical, "logicalLocation")
            name = logical.get("fullyQualifiedName") or logical.get("name")
            if name:
                return str(name), {}
    return None, {}


def _severity(res: dict[str, Any], rule: dict) -> tuple[Severity, dict]:
    score = _obj(rule.get("properties"), "rule.properties").get("security-severity")
    if score is not None:
        try:
            cvss = float(score)
        except (TypeError, ValueError):
            cvss = None
        if cvss is not None:
            return _severity_from_cvss(cvss), {"security_severity": cvss}

    level = res.get("level") or _obj(rule.get("defaultConfiguration"), "rule.defaultConfiguration").get("level")
    if level:
        return _LEVELS.get(str(level).lower(), Severity.INFO), {"level": level}
    return Severity.INFO, {}


def _severity_from_cvss(score: float) -> Severity:
    # GitHub code scanning thresholds
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0.0:
        return Severity.LOW
    return Severity.INFO
