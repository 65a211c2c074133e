from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from hashlib import sha1
from pathlib import Path
from typing import Any

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "http://json.schemastore.org/sarif-2.1.0-rtm.5"


class Severity(str, Enum):
    # Declared lowest first; rank follows declaration order
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class ScannerKind(str, Enum):
    CODEQL = "codeql"
    SNYK = "snyk"
    ZAP = "zap"

    @property
    def order(self) -> int:
        return list(ScannerKind).index(self)


class RunState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    AGGREGATING = "AGGREGATING"
    GATING = "GATING"
    COMPLETED = "COMPLETED"


class ScannerState(str, Enum):
    SCHEDULED = "SCHEDULED"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"


class RunOutcome(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    ERROR = "ERROR"

    @property
    def exit_code(self) -> int:
        return {RunOutcome.PASS: 0, RunOutcome.FAIL: 1, RunOutcome.ERROR: 2}[self]


@dataclass(frozen=True)
class ScanRequest:
    target: str
    scanners: tuple[ScannerKind, ...]
    policy: str = "default"
    target_url: str | None = None
    source_dir: Path | None = None
    required: frozenset[ScannerKind] = frozenset()
    commit: str | None = None

    def __post_init__(self) -> None:
        if not self.scanners:
            raise ValueError("ScanRequest needs at least one scanner")
        if len(set(self.scanners)) != len(self.scanners):
            raise ValueError("ScanRequest lists a scanner more than once")
        missing = set(self.required) - set(self.scanners)
        if missing:
            names = ", ".join(sorted(k.value for k in missing))
            raise ValueError(f"Required scanner(s) not enabled: {names}")


@dataclass(frozen=True)
class RawReport:
    kind: ScannerKind
    content: bytes
    filename: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    exit_code: int = 0
    stderr: str = ""

    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class Finding:
    rule_id: str
    severity: Severity
    location: str
    message: str
    source_scanner: ScannerKind
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> tuple[str, str, ScannerKind]:
        return (self.rule_id, self.location, self.source_scanner)

    @property
    def id(self) -> str:
        base = f"{self.source_scanner.value}|{self.rule_id}|{self.location}"
        return sha1(base.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "location": self.location,
            "message": self.message,
            "source_scanner": self.source_scanner.value,
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class CombinedReport:
    findings: tuple[Finding, ...]
    scanners: tuple[ScannerKind, ...]
    version: str = SARIF_VERSION
    schema: str = SARIF_SCHEMA

    def contributions(self) -> list[tuple[ScannerKind, list[Finding]]]:
        """Split back into per-scanner contributions, keeping empty ones."""
        return [(k, [f for f in self.findings if f.source_scanner is k]) for k in self.scanners]

    def summary(self) -> dict[str, Any]:
        by_sev = {s.value: 0 for s in reversed(Severity)}
        by_scanner = {k.value: 0 for k in self.scanners}
        for f in self.findings:
            by_sev[f.severity.value] += 1
            by_scanner[f.source_scanner.value] = by_scanner.get(f.source_scanner.value, 0) + 1
        return {"total": len(self.findings), "by_severity": by_sev, "by_scanner": by_scanner}

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "schema": self.schema,
            "scanners": [k.value for k in self.scanners],
            "summary": self.summary(),
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass(frozen=True)
class GateResult:
    passed: bool
    failing: tuple[Finding, ...]
    threshold: Severity
    allowlisted: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "threshold": self.threshold.value,
            "allowlisted": self.allowlisted,
            "failing": [f.to_dict() for f in self.failing],
        }
