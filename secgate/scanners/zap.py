from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from pathlib import Path

from secgate.core.config import settings
from secgate.core.errors import ScannerUnavailable
from secgate.core.util import run_cmd
from secgate.domain.models import RawReport, ScannerKind, ScanRequest

from .base import ScannerAdapter

logger = logging.getLogger(__name__)


class ZapAdapter(ScannerAdapter):
    """OWASP ZAP full scan, run in its official container."""

    report_name = "zap-results.xml"

    def __init__(self, image: str | None = None, rules_file: str | None = None):
        self.image = image or settings.ZAP_IMAGE
        self.rules_file = rules_file if rules_file is not None else settings.ZAP_RULES_FILE

    def kind(self) -> ScannerKind:
        return ScannerKind.ZAP

    async def run(self, request: ScanRequest, workdir: Path) -> RawReport:
        if not request.target_url:
            raise ScannerUnavailable(self.kind().value, "no target_url to scan")
        self.require_binary("docker")

        workdir.mkdir(parents=True, exist_ok=True)
        artifact = workdir / self.report_name
        container = f"secgate-zap-{uuid.uuid4().hex[:12]}"

        cmd = [
            "docker",
            "run",
            "--rm",
            "--name",
            container,
            "--network",
            "host",
            "-v",
            f"{workdir.resolve()}:/zap/wrk:rw",
            self.image,
            "zap-full-scan.py",
            "-t",
            request.target_url,
            "-x",
            self.report_name,
            "-a",
            "-d",
            "-I",
        ]
        if self.rules_file:
            # ZAP only sees files mounted under /zap/wrk
            rules = Path(self.rules_file)
            shutil.copy(rules, workdir / rules.name)
            cmd += ["-c", rules.name]

        try:
            r = await run_cmd(cmd, cwd=workdir)
        finally:
            # Killing the docker client does not stop the container
            await asyncio.shield(self._remove_container(container, workdir))

        return self.collect(artifact, r)

    async def _remove_container(self, name: str, workdir: Path) -> None:
        r = await run_cmd(["docker", "rm", "-f", name], cwd=workdir)
        logger.debug("docker rm -f %s -> %d", name, r.exit_code, extra={"scanner": "zap"})
