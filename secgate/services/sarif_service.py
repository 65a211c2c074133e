"""SARIF rendering and merging for the combined report artifact.

``merge_documents`` combines raw SARIF logs the same way the CI job did
with ``jq``: runs are concatenated in input order, ``$schema`` is fixed,
and ``version`` is taken from the first document that has one (falling
back to 2.1.0).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from secgate.domain.models import SARIF_SCHEMA, SARIF_VERSION, CombinedReport, Severity

logger = logging.getLogger(__name__)

_LEVEL_FOR = {
    Severity.CRITICAL: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
    Severity.INFO: "none",
}


def merge_documents(docs: Iterable[dict[str, Any]]) -> dict[str, Any]:
    version: str | None = None
    runs: list[dict[str, Any]] = []

    for doc in docs:
        v = doc.get("version")
        if v:
            if version is None:
                version = v
            elif v != version:
                logger.warning("SARIF version %s ignored; keeping %s", v, version)
        runs.extend(doc.get("runs") or [])

    return {"version": version or SARIF_VERSION, "$schema": SARIF_SCHEMA, "runs": runs}


def render(report: CombinedReport) -> dict[str, Any]:
    """One SARIF run per contributing scanner, in scanner order."""
    runs = []
    for kind, findings in report.contributions():
        rule_ids = sorted({f.rule_id for f in findings})
        results = []
        for f in findings:
            phys: dict[str, Any] = {"artifactLocation": {"uri": f.extra.get("uri", f.location)}}
            if isinstance(f.extra.get("line"), int):
                phys["region"] = {"startLine": f.extra["line"]}
            results.append(
                {
                    "ruleId": f.rule_id,
                    "level": _LEVEL_FOR[f.severity],
                    "message": {"text": f.message},
                    "locations": [{"physicalLocation": phys}],
                    "properties": {"severity": f.severity.value, "location": f.location},
                }
            )
        runs.append(
            {
                "tool": {"driver": {"name": kind.value, "rules": [{"id": r} for r in rule_ids]}},
                "results": results,
            }
        )

    return {"version": report.version, "$schema": report.schema, "runs": runs}


def dumps(doc: dict[str, Any]) -> bytes:
    return json.dumps(doc, indent=2).encode("utf-8")
