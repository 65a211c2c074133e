from __future__ import annotations

from pathlib import Path

from secgate.domain.models import ScannerKind


def is_real_failure(kind: ScannerKind, exit_code: int, artifact_path: Path | None) -> bool:
    produced = artifact_path is not None and artifact_path.exists()

    # Snyk uses exit code 1 to indicate vulnerabilities were found
    if kind is ScannerKind.SNYK:
        return not (exit_code in (0, 1) and produced)

    # ZAP: 0 pass, 1 fail, 2 warn; 3 and above is an error
    if kind is ScannerKind.ZAP:
        return exit_code >= 3 or exit_code < 0 or not produced

    return exit_code != 0
