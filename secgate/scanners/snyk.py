from __future__ import annotations

from pathlib import Path

from secgate.core.config import settings
from secgate.core.errors import ScannerUnavailable
from secgate.core.util import run_cmd
from secgate.domain.models import RawReport, ScannerKind, ScanRequest

from .base import ScannerAdapter


class SnykAdapter(ScannerAdapter):
    report_name = "snyk.sarif"

    def __init__(self, extra_args: list[str] | None = None):
        self.extra_args = list(extra_args if extra_args is not None else settings.SNYK_ARGS)

    def kind(self) -> ScannerKind:
        return ScannerKind.SNYK

    async def run(self, request: ScanRequest, workdir: Path) -> RawReport:
        if request.source_dir is None:
            raise ScannerUnavailable(self.kind().value, "no source_dir to test")
        self.require_binary("snyk")

        workdir.mkdir(parents=True, exist_ok=True)
        artifact = workdir / self.report_name

        # snyk exits 1 when it finds vulnerabilities; the SARIF file is still written
        r = await run_cmd(
            ["snyk", "test", f"--sarif-file-output={artifact.resolve()}", *self.extra_args],
            cwd=request.source_dir,
        )
        return self.collect(artifact, r)
