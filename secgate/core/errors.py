"""Pipeline exceptions.

Every failure carries a closed ``FailureKind`` so the orchestrator can
record it on the run result without string matching.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    SCANNER_UNAVAILABLE = "SCANNER_UNAVAILABLE"
    SCANNER_TIMEOUT = "SCANNER_TIMEOUT"
    SCANNER_ERROR = "SCANNER_ERROR"
    MALFORMED_REPORT = "MALFORMED_REPORT"
    CANCELLED = "CANCELLED"
    AGGREGATION_CONFLICT = "AGGREGATION_CONFLICT"
    POLICY_UNSATISFIABLE = "POLICY_UNSATISFIABLE"
    POLICY_INVALID = "POLICY_INVALID"
    REQUIRED_SCANNER_FAILED = "REQUIRED_SCANNER_FAILED"
    DEPLOY_FAILED = "DEPLOY_FAILED"
    ARTIFACT_STORE_FAILED = "ARTIFACT_STORE_FAILED"


class SecgateError(Exception):
    """Root exception for all pipeline errors."""

    kind: FailureKind | None = None


# ── Scanner-local (recoverable) ─────────────────────────────
class ScannerFailure(SecgateError):
    """A single scanner could not contribute a report."""

    def __init__(self, scanner: str, detail: str) -> None:
        super().__init__(f"{scanner}: {detail}")
        self.scanner = scanner
        self.detail = detail


class ScannerUnavailable(ScannerFailure):
    kind = FailureKind.SCANNER_UNAVAILABLE


class ScannerTimeout(ScannerFailure):
    kind = FailureKind.SCANNER_TIMEOUT


class ScannerError(ScannerFailure):
    kind = FailureKind.SCANNER_ERROR


class MalformedReport(ScannerFailure):
    kind = FailureKind.MALFORMED_REPORT


# ── Run-level (fatal) ───────────────────────────────────────
class AggregationConflict(SecgateError):
    kind = FailureKind.AGGREGATION_CONFLICT


class PolicyUnsatisfiable(SecgateError):
    kind = FailureKind.POLICY_UNSATISFIABLE

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"Policy requires {required} scanner report(s) but only {available} produced one"
        )
        self.required = required
        self.available = available


class PolicyInvalid(SecgateError):
    kind = FailureKind.POLICY_INVALID


class RequiredScannerFailed(SecgateError):
    kind = FailureKind.REQUIRED_SCANNER_FAILED

    def __init__(self, scanner: str, cause: str | None) -> None:
        super().__init__(f"Required scanner {scanner} failed: {cause or 'unknown error'}")
        self.scanner = scanner
        self.cause = cause


class DeployError(SecgateError):
    kind = FailureKind.DEPLOY_FAILED


# ── Infrastructure / programming errors ─────────────────────
class InvalidTransition(SecgateError):
    """An illegal state transition was attempted."""

    def __init__(self, from_state: str, to_state: str) -> None:
        super().__init__(f"Invalid transition: {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class ArtifactNotFound(SecgateError):
    """The artifact store holds nothing under the requested name."""


class ArtifactStoreError(SecgateError):
    """The artifact store could not persist an artifact."""

    kind = FailureKind.ARTIFACT_STORE_FAILED
