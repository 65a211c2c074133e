from __future__ import annotations

from typing import Iterable

from secgate.domain.models import ScannerKind

from .base import ScannerAdapter


class ScannerRegistry:
    def __init__(self, adapters: Iterable[ScannerAdapter]):
        self._by_kind = {a.kind(): a for a in adapters}

    def list(self) -> list[ScannerKind]:
        return sorted(self._by_kind.keys(), key=lambda k: k.order)

    def get(self, kind: ScannerKind) -> ScannerAdapter | None:
        return self._by_kind.get(kind)
