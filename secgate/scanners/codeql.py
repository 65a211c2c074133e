from __future__ import annotations

from pathlib import Path

from secgate.core.config import settings
from secgate.core.errors import ScannerError, ScannerUnavailable
from secgate.core.util import run_cmd, tail
from secgate.domain.models import RawReport, ScannerKind, ScanRequest

from .base import ScannerAdapter


class CodeQLAdapter(ScannerAdapter):
    report_name = "codeql.sarif"

    def __init__(self, language: str | None = None, suite: str | None = None):
        self.language = language or settings.CODEQL_LANGUAGE
        self.suite = suite or settings.CODEQL_SUITE

    def kind(self) -> ScannerKind:
        return ScannerKind.CODEQL

    async def run(self, request: ScanRequest, workdir: Path) -> RawReport:
        if request.source_dir is None:
            raise ScannerUnavailable(self.kind().value, "no source_dir to analyse")
        self.require_binary("codeql")

        workdir.mkdir(parents=True, exist_ok=True)
        db = workdir / "codeql-db"
        artifact = workdir / self.report_name
        src = request.source_dir

        r = await run_cmd(
            [
                "codeql",
                "database",
                "create",
                str(db.resolve()),
                f"--language={self.language}",
                f"--source-root={src.resolve()}",
                "--overwrite",
            ],
            cwd=src,
        )
        if r.exit_code != 0:
            raise ScannerError(
                self.kind().value,
                f"database create failed (exit_code={r.exit_code}): {tail(r.stderr, 500).strip()}",
            )

        # Use resolved path for --output since cwd differs from workdir
        r = await run_cmd(
            [
                "codeql",
                "database",
                "analyze",
                str(db.resolve()),
                self.suite,
                "--format=sarif-latest",
                f"--output={artifact.resolve()}",
            ],
            cwd=src,
        )
        return self.collect(artifact, r)
