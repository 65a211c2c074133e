from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from secgate.domain.models import ScannerKind, Severity


class Policy(BaseModel):
    """Quality gate policy.

    Accepts both ``max_severity`` and ``maxSeverity`` style keys so policy
    files written for the CI pipeline load unchanged.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    max_severity: Severity = Field(
        Severity.HIGH,
        description="Findings at or above this severity fail the gate.",
    )
    allowlist: frozenset[str] = Field(
        frozenset(),
        description="Rule ids exempt from the gate.",
    )
    min_scanners_required: int = Field(
        0,
        ge=0,
        description="Minimum number of scanners that must produce a report.",
    )

    @field_validator("max_severity", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class RunConfig(BaseModel):
    """Request body for triggering a pipeline run."""

    target: str = Field(
        ...,
        description="Deployable artifact reference (container image) to gate and redeploy.",
        json_schema_extra={"examples": ["bkimminich/juice-shop"]},
    )
    target_url: str | None = Field(None, description="URL of the running application for DAST.")
    source_dir: str | None = Field(None, description="Checked-out source tree for SAST/SCA.")
    scanners: list[ScannerKind] | None = Field(
        None,
        description="Scanners to run. If omitted, the configured defaults run.",
        json_schema_extra={"examples": [["codeql", "snyk", "zap"]]},
    )
    required: list[ScannerKind] | None = Field(
        None,
        description="Scanners whose failure aborts the run instead of degrading to an empty contribution.",
    )
    policy: str = Field("default", description="Policy reference: `default` or a JSON policy file path.")
    commit: str | None = Field(None, description="Commit id that triggered the run.")
