from __future__ import annotations

from abc import ABC, abstractmethod

from secgate.domain.models import Finding, RawReport, ScannerKind


class ReportNormalizer(ABC):
    """Maps one scanner's native report format to Findings.

    Implementations are pure: they read only ``raw.content`` and raise
    MalformedReport when required fields are missing or unparseable.
    """

    @abstractmethod
    def kind(self) -> ScannerKind: ...

    @abstractmethod
    def normalize(self, raw: RawReport) -> list[Finding]: ...
