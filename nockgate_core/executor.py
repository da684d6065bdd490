"""
Runs the external wallet binary.

Every invocation is an argument vector passed to
``asyncio.create_subprocess_exec``.  Each step is bounded by a timeout
(the process is killed when it expires) and an output cap.

A spend is three invocations:

    1. ``simple-spend …``        writes ``<drafts>/draft_XXXX.draft``
    2. ``sign-tx --draft <path>``
    3. ``send-tx --draft <path>``

The draft file is removed afterwards whether or not steps 2-3 succeed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from pathlib import Path
from typing import AsyncIterator

from nockgate_core.commands import CommandBuilder, WalletCommand
from nockgate_core.errors import ExecutionError

logger = logging.getLogger("nockgate_executor")

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_OUTPUT = 1_048_576

_DRAFT_NAME_RE = re.compile(r"draft[_\w]*\.draft")


class WalletExecutor:
    """Subprocess runner bound to one wallet socket and drafts directory."""

    def __init__(
        self,
        builder: CommandBuilder,
        drafts_dir: str | Path = "./drafts",
        timeout: float = DEFAULT_TIMEOUT,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ):
        self.builder = builder
        self.drafts_dir = Path(drafts_dir)
        self.timeout = timeout
        self.max_output = max_output

    # ── single invocation ────────────────────────────────────────

    async def run(self, command: WalletCommand, step: str = "wallet") -> str:
        """Run *command* once and return its stdout."""
        logger.info(f"[{step}] {command.render()}", extra={"step": step})
        try:
            proc = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error(f"[{step}] could not start wallet binary: {exc}")
            raise ExecutionError(f"{step} failed: wallet binary unavailable") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            logger.error(f"[{step}] timed out after {self.timeout:.0f}s")
            raise ExecutionError(f"{step} timed out after {self.timeout:.0f}s")

        if len(stdout) > self.max_output or len(stderr) > self.max_output:
            raise ExecutionError(f"{step} produced more than {self.max_output} bytes of output")

        err_text = stderr.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            logger.error(f"[{step}] exit {proc.returncode}: {err_text}")
            raise ExecutionError(f"{step} failed with exit code {proc.returncode}")
        if err_text:
            logger.warning(f"[{step} stderr] {err_text}")

        return stdout.decode("utf-8", errors="replace")

    # ── draft → sign → send ──────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _draft(self, draft_output: str) -> AsyncIterator[Path]:
        match = _DRAFT_NAME_RE.search(draft_output)
        if not match:
            raise ExecutionError("Could not find draft filename in simple-spend output")
        path = self.drafts_dir / match.group(0)
        try:
            yield path
        finally:
            try:
                path.unlink()
                logger.info(f"[cleanup] removed draft {path.name}")
            except OSError as exc:
                logger.warning(f"[cleanup] could not remove draft {path.name}: {exc}")

    async def run_spend(self, draft_command: WalletCommand) -> str:
        """Create, sign and send a transaction; return the combined output."""
        try:
            self.drafts_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(f"[draft] cannot create drafts directory {self.drafts_dir}: {exc}")
            raise ExecutionError("draft failed: drafts directory unavailable") from exc
        draft_output = await self.run(draft_command, step="draft")
        async with self._draft(draft_output) as draft_path:
            sign_output = await self.run(self.builder.sign_tx(draft_path), step="sign")
            send_output = await self.run(self.builder.send_tx(draft_path), step="send")
        return (
            f"Draft: {draft_output.strip()}\n"
            f"Sign: {sign_output.strip()}\n"
            f"Send: {send_output.strip()}"
        )

    async def execute(self, command: WalletCommand) -> str:
        if command.multi_step:
            return await self.run_spend(command)
        return await self.run(command)
