"""Aggregator: merges per-scanner Findings into one CombinedReport.

Duplicates (same rule id, location and scanner) collapse to the one with
the highest severity. The result is independent of input order and of
repeated inputs, so re-aggregating a report yields the same report.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable

from secgate.core.errors import AggregationConflict
from secgate.domain.models import CombinedReport, Finding, ScannerKind, Severity

logger = logging.getLogger(__name__)

Contribution = tuple[ScannerKind, Iterable[Finding]]


def combine(contributions: Iterable[Contribution]) -> CombinedReport:
    best: dict[tuple[str, str, ScannerKind], Finding] = {}
    scanners: set[ScannerKind] = set()

    for kind, findings in contributions:
        scanners.add(kind)
        for f in findings:
            if f.source_scanner is not kind:
                raise AggregationConflict(
                    f"Finding {f.rule_id} at {f.location} claims {f.source_scanner.value} "
                    f"but was contributed by {kind.value}"
                )
            if not isinstance(f.severity, Severity):
                raise AggregationConflict(f"Finding {f.rule_id} has unknown severity {f.severity!r}")

            current = best.get(f.key)
            best[f.key] = f if current is None else _reconcile(current, f)

    ordered = sorted(best.values(), key=_sort_key)
    report = CombinedReport(
        findings=tuple(ordered),
        scanners=tuple(sorted(scanners, key=lambda k: k.order)),
    )
    logger.debug("Combined %d findings from %d scanner(s)", len(ordered), len(scanners))
    return report


def _reconcile(a: Finding, b: Finding) -> Finding:
    # max severity wins; ties fall back to message, then extra, for determinism
    if a.severity.rank != b.severity.rank:
        return a if a.severity.rank > b.severity.rank else b
    return a if _tiebreak(a) <= _tiebreak(b) else b


def _tiebreak(f: Finding) -> tuple[str, str]:
    return f.message, json.dumps(f.extra, sort_keys=True, default=str)


def _sort_key(f: Finding) -> tuple:
    return (-f.severity.rank, f.rule_id, f.location, f.source_scanner.order)
