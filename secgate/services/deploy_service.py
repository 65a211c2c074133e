"""Deploy trigger: redeploys the target container after a passing gate.

Mirrors the CI redeploy job: pull the image, (re)start the container and
poll its URL until it answers HTTP 200 or the timeout expires.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

from secgate.core.config import settings
from secgate.core.errors import DeployError
from secgate.core.util import run_cmd, tail

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeploymentHandle:
    target: str
    container: str
    url: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "container": self.container,
            "url": self.url,
            "started_at": self.started_at.isoformat(),
        }


class DeployTrigger(ABC):
    @abstractmethod
    async def deploy(self, target: str) -> DeploymentHandle: ...


class DockerDeployTrigger(DeployTrigger):
    def __init__(
        self,
        container: str | None = None,
        ports: str | None = None,
        health_url: str | None = None,
        timeout_sec: float | None = None,
        poll_interval_sec: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.container = container or settings.DEPLOY_CONTAINER
        self.ports = ports or settings.DEPLOY_PORTS
        self.health_url = health_url or settings.DEPLOY_HEALTH_URL
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.DEPLOY_TIMEOUT_SEC
        self.poll_interval_sec = poll_interval_sec
        self._transport = transport

    async def deploy(self, target: str) -> DeploymentHandle:
        if shutil.which("docker") is None:
            raise DeployError("docker not installed")

        cwd = Path.cwd()

        # A stale container with the same name would make `docker run` fail
        await run_cmd(["docker", "rm", "-f", self.container], cwd=cwd)

        r = await run_cmd(["docker", "pull", target], cwd=cwd)
        if r.exit_code != 0:
            raise DeployError(f"docker pull {target} failed: {tail(r.stderr, 500).strip()}")

        r = await run_cmd(
            ["docker", "run", "-d", "-p", self.ports, "--name", self.container, target],
            cwd=cwd,
        )
        if r.exit_code != 0:
            raise DeployError(f"docker run {target} failed: {tail(r.stderr, 500).strip()}")

        await self._wait_healthy()
        logger.info("Deployed %s as %s (%s)", target, self.container, self.health_url)
        return DeploymentHandle(target=target, container=self.container, url=self.health_url)

    async def _wait_healthy(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_sec
        last = "no response"

        async with httpx.AsyncClient(transport=self._transport, timeout=5.0) as client:
            while True:
                try:
                    resp = await client.get(self.health_url)
                    if resp.status_code == 200:
                        return
                    last = f"HTTP {resp.status_code}"
                except httpx.HTTPError as e:
                    last = str(e) or type(e).__name__

                if loop.time() >= deadline:
                    raise DeployError(
                        f"{self.health_url} not healthy after {self.timeout_sec:.0f}s ({last})"
                    )
                await asyncio.sleep(self.poll_interval_sec)
