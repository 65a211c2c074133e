from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from secgate.core.errors import ScannerError, ScannerUnavailable
from secgate.core.util import CmdResult, tail
from secgate.domain.models import RawReport, ScannerKind, ScanRequest

from .failure_policy import is_real_failure


class ScannerAdapter(ABC):
    """Wraps one external scanning tool.

    ``run`` writes the tool's native report into ``workdir`` and returns it
    as a RawReport. Processes started by an adapter must not outlive it.
    """

    report_name: str

    @abstractmethod
    def kind(self) -> ScannerKind: ...

    @abstractmethod
    async def run(self, request: ScanRequest, workdir: Path) -> RawReport: ...

    def require_binary(self, name: str) -> None:
        if shutil.which(name) is None:
            raise ScannerUnavailable(self.kind().value, f"{name} not installed")

    def collect(self, artifact: Path, r: CmdResult) -> RawReport:
        """Turn a finished tool invocation into a RawReport, or raise ScannerError."""
        if is_real_failure(self.kind(), r.exit_code, artifact):
            raise ScannerError(
                self.kind().value,
                f"exit_code={r.exit_code}: {tail(r.stderr, 500).strip() or 'no stderr'}",
            )
        if not artifact.exists():
            raise ScannerError(self.kind().value, f"{artifact.name} was not produced")

        return RawReport(
            kind=self.kind(),
            content=artifact.read_bytes(),
            filename=artifact.name,
            exit_code=r.exit_code,
            stderr=tail(r.stderr),
        )
