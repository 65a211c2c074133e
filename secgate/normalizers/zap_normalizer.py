from __future__ import annotations

import xml.etree.ElementTree as ET

from secgate.core.errors import MalformedReport
from secgate.domain.models import Finding, RawReport, ScannerKind, Severity

from .base import ReportNormalizer

# ZAP riskcode: 0 informational, 1 low, 2 medium, 3 high
_RISK = {
    "0": Severity.INFO,
    "1": Severity.LOW,
    "2": Severity.MEDIUM,
    "3": Severity.HIGH,
}


class ZapNormalizer(ReportNormalizer):
    """Normalizes the traditional ZAP XML report (``-x report.xml``)."""

    def kind(self) -> ScannerKind:
        return ScannerKind.ZAP

    def normalize(self, raw: RawReport) -> list[Finding]:
        content = raw.content.strip()
        if not content:
            return []

        # parse bytes so the XML declaration's encoding is honoured
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise MalformedReport(self.kind().value, f"not valid XML: {e}") from e

        if root.tag != "OWASPZAPReport":
            raise MalformedReport(self.kind().value, f"unexpected root element <{root.tag}>")

        out: list[Finding] = []
        for site in root.iter("site"):
            site_name = site.get("name") or ""
            for alert in site.iter("alertitem"):
                rule = _text(alert, "pluginid")
                if not rule:
                    raise MalformedReport(self.kind().value, "alert without pluginid")

                severity = _RISK.get(_text(alert, "riskcode") or "", Severity.INFO)
                msg = _text(alert, "alert") or _text(alert, "name") or f"ZAP alert {rule}"
                base_extra = {
                    k: v
                    for k, v in (
                        ("confidence", _text(alert, "confidence")),
                        ("cwe", _text(alert, "cweid")),
                        ("solution", _text(alert, "solution")),
                    )
                    if v
                }

                instances = alert.findall("instances/instance")
                if not instances:
                    if not site_name:
                        raise MalformedReport(self.kind().value, f"alert {rule} has no location")
                    out.append(self._finding(rule, severity, site_name, msg, {**base_extra, "uri": site_name}))
                    continue

                for inst in instances:
                    uri = _text(inst, "uri") or site_name
                    if not uri:
                        raise MalformedReport(self.kind().value, f"alert {rule} has no location")
                    extra = {**base_extra, "uri": uri}
                    method = _text(inst, "method")
                    if method:
                        extra["method"] = method
                    param = _text(inst, "param")
                    if param:
                        extra["param"] = param
                    out.append(self._finding(rule, severity, uri, msg, extra))

        return out

    def _finding(self, rule: str, severity: Severity, location: str, msg: str, extra: dict) -> Finding:
        return Finding(
            rule_id=rule,
            severity=severity,
            location=location,
            message=msg,
            source_scanner=self.kind(),
            extra=extra,
        )


def _text(el: ET.Element, tag: str) -> str | None:
    child = el.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None
