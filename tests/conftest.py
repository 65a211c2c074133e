import json

import pytest
from fastapi.testclient import TestClient

from secgate.core.config import settings
from secgate.main import app


@pytest.fixture(autouse=True)
def _use_tmp_data(tmp_path, monkeypatch):
    """Redirect all artifacts to a temp directory so tests never touch real data."""
    monkeypatch.setattr(settings, "DATA_DIR", str(tmp_path / "data"))


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def codeql_sarif() -> bytes:
    """Minimal CodeQL-style SARIF: rules live in tool.extensions and are referenced by index."""
    doc = {
        "version": "2.1.0",
        "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
        "runs": [
            {
                "tool": {
                    "driver": {"name": "CodeQL", "rules": []},
                    "extensions": [
                        {
                            "name": "codeql/javascript-queries",
                            "rules": [
                                {
                                    "id": "js/sql-injection",
                                    "shortDescription": {"text": "Database query built from user-controlled sources"},
                                    "properties": {"security-severity": "8.8"},
                                },
                                {
                                    "id": "js/missing-rate-limiting",
                                    "properties": {"security-severity": "7.5"},
                                },
                            ],
                        }
                    ],
                },
                "results": [
                    {
                        "ruleId": "js/sql-injection",
                        "rule": {"id": "js/sql-injection", "index": 0, "toolComponent": {"index": 0}},
                        "message": {"text": "This query depends on a user-provided value."},
                        "locations": [
                            {
                                "physicalLocation": {
                                    "artifactLocation": {"uri": "routes/search.ts"},
                                    "region": {"startLine": 23},
                                }
                            }
                        ],
                    }
                ],
            }
        ],
    }
    return json.dumps(doc).encode("utf-8")


@pytest.fixture
def snyk_sarif() -> bytes:
    """Snyk-style SARIF: rules in tool.driver.rules, plain ruleId, level on the result."""
    doc = {
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "Snyk Open Source",
                        "rules": [
                            {"id": "SNYK-JS-LODASH-567746", "shortDescription": {"text": "Prototype Pollution"}},
                            {"id": "SNYK-JS-MINIMIST-559764"},
                        ],
                    }
                },
                "results": [
                    {
                        "ruleId": "SNYK-JS-LODASH-567746",
                        "level": "error",
                        "message": {"text": "lodash@4.17.15 is vulnerable"},
                        "locations": [{"physicalLocation": {"artifactLocation": {"uri": "package.json"}}}],
                    },
                    {
                        "ruleId": "SNYK-JS-MINIMIST-559764",
                        "level": "note",
                        "message": {"text": "minimist@0.0.8 is vulnerable"},
                        "locations": [{"physicalLocation": {"artifactLocation": {"uri": "package.json"}}}],
                    },
                ],
            }
        ],
    }
    return json.dumps(doc).encode("utf-8")


@pytest.fixture
def zap_xml() -> bytes:
    return b"""<?xml version="1.0"?>
<OWASPZAPReport programName="ZAP" version="2.14.0">
  <site name="http://localhost:3000" host="localhost" port="3000" ssl="false">
    <alerts>
      <alertitem>
        <pluginid>10038</pluginid>
        <alert>Content Security Policy (CSP) Header Not Set</alert>
        <name>Content Security Policy (CSP) Header Not Set</name>
        <riskcode>2</riskcode>
        <confidence>3</confidence>
        <instances>
          <instance>
            <uri>http://localhost:3000/</uri>
            <method>GET</method>
            <param></param>
          </instance>
          <instance>
            <uri>http://localhost:3000/ftp</uri>
            <method>GET</method>
          </instance>
        </instances>
        <cweid>693</cweid>
      </alertitem>
      <alertitem>
        <pluginid>10096</pluginid>
        <alert>Timestamp Disclosure - Unix</alert>
        <riskcode>0</riskcode>
      </alertitem>
    </alerts>
  </site>
</OWASPZAPReport>
"""
