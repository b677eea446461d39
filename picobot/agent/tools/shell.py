"""Shell execution tool."""

from __future__ import annotations

import asyncio
import os
import re
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from picobot.agent.tools.base import Tool

DEFAULT_TIMEOUT = 120
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
NO_OUTPUT = "(no output)"

_READ_CHUNK = 64 * 1024


@dataclass
class CommandResult:
    """Captured outcome of one shell command."""

    stdout: str
    stderr: str
    returncode: int | None
    timed_out: bool = False
    overflowed: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.overflowed


class CommandExecutor:
    """
    Runs shell commands under a wall-clock deadline and an output budget.

    The command runs as an asyncio subprocess in its own process group so a
    slow command only suspends the calling conversation. Hitting the deadline
    or the combined stdout+stderr budget kills the whole group.
    """

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ):
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes

    async def run(self, command: str, cwd: str | None = None) -> CommandResult:
        posix = os.name == "posix"
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            start_new_session=posix,
        )

        stdout = bytearray()
        stderr = bytearray()
        overflowed = False
        timed_out = False

        async def pump(stream: asyncio.StreamReader, sink: bytearray) -> None:
            nonlocal overflowed
            # Read to EOF even after overflow so the pipes close and wait() returns.
            while chunk := await stream.read(_READ_CHUNK):
                if overflowed:
                    continue
                room = self.max_output_bytes - len(stdout) - len(stderr)
                if len(chunk) > room:
                    sink.extend(chunk[: max(room, 0)])
                    overflowed = True
                    self._kill(process)
                    continue
                sink.extend(chunk)

        async def collect() -> None:
            await asyncio.gather(pump(process.stdout, stdout), pump(process.stderr, stderr))
            await process.wait()

        task = asyncio.ensure_future(collect())
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if not done:
            timed_out = True
            self._kill(process)
        await task

        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            returncode=process.returncode,
            timed_out=timed_out,
            overflowed=overflowed,
        )

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass

    def render(self, result: CommandResult) -> str:
        """Turn a result into the text handed back to the model."""
        if result.ok:
            return result.stdout or NO_OUTPUT

        parts = []
        if result.stdout:
            parts.append(f"stdout:\n{result.stdout}")
        if result.stderr:
            parts.append(f"stderr:\n{result.stderr}")
        if result.timed_out:
            parts.append(f"Error: command timed out after {self.timeout} seconds")
        if result.overflowed:
            parts.append(f"Error: output exceeded {self.max_output_bytes} bytes")
        if not parts:
            return f"Error: command exited with code {result.returncode}"
        return "\n".join(parts)


class ExecTool(Tool):
    """Tool to execute shell commands."""

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        working_dir: str | None = None,
        deny_patterns: list[str] | None = None,
        restrict_to_workspace: bool = False,
    ):
        self.executor = CommandExecutor(timeout=timeout, max_output_bytes=max_output_bytes)
        self.working_dir = working_dir
        self.deny_patterns = deny_patterns or [
            r"\brm\s+-[rf]{1,2}\b",  # rm -r, rm -rf, rm -fr
            r"\bdel\s+/[fq]\b",  # del /f, del /q
            r"\brmdir\s+/s\b",  # rmdir /s
            r"\b(format|mkfs|diskpart)\b",  # disk operations
            r"\bdd\s+if=",  # dd
            r">\s*/dev/sd",  # write to disk
            r"\b(shutdown|reboot|poweroff)\b",  # system power
            r":\(\)\s*\{.*\};\s*:",  # fork bomb
        ]
        self.restrict_to_workspace = restrict_to_workspace

    @property
    def name(self) -> str:
        return "execute_bash"

    @property
    def description(self) -> str:
        return "Execute a bash command and return its output."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The bash command to execute."},
            },
            "required": ["command"],
        }

    async def execute(self, command: str, **kwargs: Any) -> str:
        cwd = self.working_dir or os.getcwd()
        guard_error = self._guard_command(command, cwd)
        if guard_error:
            logger.warning(f"{guard_error}: {command[:200]}")
            return guard_error

        result = await self.executor.run(command, cwd=cwd)
        if not result.ok:
            logger.info(
                f"Command finished with exit={result.returncode} "
                f"timed_out={result.timed_out} overflowed={result.overflowed}"
            )
        return self.executor.render(result)

    def _guard_command(self, command: str, cwd: str) -> str | None:
        """Best-effort safety guard for potentially destructive commands."""
        cmd = command.strip()
        lower = cmd.lower()

        for pattern in self.deny_patterns:
            if re.search(pattern, lower):
                return "Error: Command blocked by safety guard (dangerous pattern detected)"

        if self.restrict_to_workspace:
            if "..\\" in cmd or "../" in cmd:
                return "Error: Command blocked by safety guard (path traversal detected)"

            cwd_path = Path(cwd).resolve()
            # Absolute paths only; relative ones like ".venv/bin/python" stay allowed.
            for raw in re.findall(r"(?:^|[\s|>])(/[^\s\"'>]+)", cmd):
                p = Path(raw.strip()).resolve()
                if cwd_path not in p.parents and p != cwd_path:
                    return "Error: Command blocked by safety guard (path outside working dir)"

        return None
