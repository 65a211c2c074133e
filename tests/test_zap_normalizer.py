import pytest

from secgate.core.errors import MalformedReport
from secgate.domain.models import RawReport, ScannerKind, Severity
from secgate.normalizers.zap_normalizer import ZapNormalizer


def _raw(content: bytes) -> RawReport:
    return RawReport(kind=ScannerKind.ZAP, content=content, filename="zap-results.xml")


def test_zap_normalizer_emits_one_finding_per_instance(zap_xml):
    findings = ZapNormalizer().normalize(_raw(zap_xml))

    csp = [f for f in findings if f.rule_id == "10038"]
    assert sorted(f.location for f in csp) == ["http://localhost:3000/", "http://localhost:3000/ftp"]
    assert all(f.severity is Severity.MEDIUM for f in csp)
    assert csp[0].message == "Content Security Policy (CSP) Header Not Set"
    assert csp[0].extra["cwe"] == "693"
    assert csp[0].extra["method"] == "GET"
    assert "param" not in csp[0].extra


def test_zap_alert_without_instances_falls_back_to_site(zap_xml):
    findings = ZapNormalizer().normalize(_raw(zap_xml))

    [ts] = [f for f in findings if f.rule_id == "10096"]
    assert ts.location == "http://localhost:3000"
    assert ts.severity is Severity.INFO
    assert ts.source_scanner is ScannerKind.ZAP


def test_zap_missing_riskcode_defaults_to_info():
    xml = b"""<OWASPZAPReport><site name="http://h"><alerts>
      <alertitem><pluginid>1</pluginid><alert>a</alert></alertitem>
    </alerts></site></OWASPZAPReport>"""
    [f] = ZapNormalizer().normalize(_raw(xml))
    assert f.severity is Severity.INFO


def test_zap_empty_report_has_no_findings():
    assert ZapNormalizer().normalize(_raw(b"")) == []
    assert ZapNormalizer().normalize(_raw(b"<OWASPZAPReport/>")) == []


def test_zap_alert_without_pluginid_is_malformed():
    xml = b"""<OWASPZAPReport><site name="http://h"><alerts>
      <alertitem><alert>a</alert><riskcode>3</riskcode></alertitem>
    </alerts></site></OWASPZAPReport>"""
    with pytest.raises(MalformedReport, match="pluginid"):
        ZapNormalizer().normalize(_raw(xml))


def test_zap_alert_without_any_location_is_malformed():
    xml = b"""<OWASPZAPReport><site><alerts>
      <alertitem><pluginid>1</pluginid><riskcode>3</riskcode></alertitem>
    </alerts></site></OWASPZAPReport>"""
    with pytest.raises(MalformedReport, match="location"):
        ZapNormalizer().normalize(_raw(xml))


@pytest.mark.parametrize("content", [b"<OWASPZAPReport>", b"<html></html>"])
def test_zap_unparseable_or_foreign_xml_is_malformed(content):
    with pytest.raises(MalformedReport):
        ZapNormalizer().normalize(_raw(content))
