from __future__ import annotations

from dataclasses import dataclass

from secgate.domain.models import ScannerKind

from .base import ReportNormalizer


@dataclass
class NormalizerRegistry:
    normalizers: list[ReportNormalizer]

    def by_kind(self, kind: ScannerKind) -> ReportNormalizer | None:
        for n in self.normalizers:
            if n.kind() is kind:
                return n
        return None
