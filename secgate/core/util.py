import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence


@dataclass
class CmdResult:
    exit_code: int
    stdout: str
    stderr: str


async def run_cmd(cmd: Sequence[str], cwd: Path, timeout_sec: float | None = None) -> CmdResult:
    """Run an external command, killing it on timeout or cancellation."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout_sec)
    finally:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()

    return CmdResult(
        proc.returncode,
        (out or b"").decode("utf-8", errors="replace"),
        (err or b"").decode("utf-8", errors="replace"),
    )


def tail(text: str | None, limit: int = 2000) -> str:
    return (text or "")[-limit:]
