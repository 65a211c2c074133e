from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from secgate.core.config import settings
from secgate.core.errors import PolicyInvalid, PolicyUnsatisfiable
from secgate.domain.models import CombinedReport, GateResult
from secgate.domain.schemas import Policy

logger = logging.getLogger(__name__)


def evaluate(report: CombinedReport, policy: Policy) -> GateResult:
    """Gate a combined report.

    Raises PolicyUnsatisfiable (an infrastructure error, not a gate failure)
    when fewer scanners produced a report than the policy requires.
    """
    available = len(report.scanners)
    if policy.min_scanners_required > available:
        raise PolicyUnsatisfiable(policy.min_scanners_required, available)

    threshold = policy.max_severity.rank
    over = [f for f in report.findings if f.severity.rank >= threshold]
    failing = tuple(f for f in over if f.rule_id not in policy.allowlist)

    result = GateResult(
        passed=not failing,
        failing=failing,
        threshold=policy.max_severity,
        allowlisted=len(over) - len(failing),
    )
    logger.info(
        "[gate] %s: %d finding(s) at or above %s (%d allowlisted)",
        "PASSED" if result.passed else "FAILED",
        len(failing),
        policy.max_severity.value,
        result.allowlisted,
    )
    return result


def default_policy() -> Policy:
    try:
        return Policy(
            max_severity=settings.GATE_MAX_SEVERITY,
            allowlist=frozenset(settings.GATE_ALLOWLIST),
            min_scanners_required=settings.GATE_MIN_SCANNERS,
        )
    except ValidationError as e:
        raise PolicyInvalid(f"Invalid GATE_* settings: {e}") from e


def load_policy(ref: str | None) -> Policy:
    """Resolve a policy reference: ``default`` or a path to a JSON policy file."""
    if not ref or ref == "default":
        return default_policy()

    p = Path(ref)
    if not p.is_file():
        raise PolicyInvalid(f"Policy file not found: {ref}")
    try:
        return Policy.model_validate_json(p.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise PolicyInvalid(f"Invalid policy {ref}: {e}") from e
