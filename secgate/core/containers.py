from __future__ import annotations

from pathlib import Path

from secgate.core.config import settings
from secgate.domain.models import ScannerKind, ScanRequest
from secgate.domain.schemas import RunConfig
from secgate.normalizers.registry import NormalizerRegistry
from secgate.normalizers.sarif_normalizer import CodeQLNormalizer, SnykNormalizer
from secgate.normalizers.zap_normalizer import ZapNormalizer
from secgate.scanners.codeql import CodeQLAdapter
from secgate.scanners.registry import ScannerRegistry
from secgate.scanners.snyk import SnykAdapter
from secgate.scanners.zap import ZapAdapter
from secgate.services.artifact_store import LocalArtifactStore
from secgate.services.deploy_service import DockerDeployTrigger
from secgate.services.orchestrator import Orchestrator


def build_scanner_registry() -> ScannerRegistry:
    return ScannerRegistry([CodeQLAdapter(), SnykAdapter(), ZapAdapter()])


def build_normalizer_registry() -> NormalizerRegistry:
    return NormalizerRegistry(
        [
            CodeQLNormalizer(),
            SnykNormalizer(),
            ZapNormalizer(),
        ]
    )


def build_orchestrator(deploy: bool = True) -> Orchestrator:
    """Wire the production pipeline.

    With ``deploy=False`` a passing run stops after the gate; this is what
    the CLI's ``--no-deploy`` and dry runs use.
    """
    return Orchestrator(
        scanners=build_scanner_registry(),
        normalizers=build_normalizer_registry(),
        store=LocalArtifactStore(),
        deploy_trigger=DockerDeployTrigger() if deploy else None,
    )


def build_scan_request(cfg: RunConfig) -> ScanRequest:
    """Turn an API/CLI run config into an immutable ScanRequest, filling defaults from settings."""
    scanners = cfg.scanners or [ScannerKind(s) for s in settings.ENABLED_SCANNERS]
    if cfg.required is not None:
        required = cfg.required
    else:
        # configured required scanners only apply when they are enabled for this run
        required = [ScannerKind(s) for s in settings.REQUIRED_SCANNERS if ScannerKind(s) in scanners]

    return ScanRequest(
        target=cfg.target,
        scanners=tuple(scanners),
        policy=cfg.policy,
        target_url=cfg.target_url,
        source_dir=Path(cfg.source_dir) if cfg.source_dir else None,
        required=frozenset(required),
        commit=cfg.commit,
    )
