"""
process.py

Responsibility: Run external commands (Rscript, git) behind a small, mockable interface.

All subprocess use goes through a `CommandRunner`, so the render and publish
flows can be tested with a recording fake instead of R and git.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

logger = logging.getLogger("bookpress.process")

# Shell convention for "command not found".
NOT_FOUND_RETURNCODE = 127


@dataclass
class RunResult:
    """Result of running an external command."""

    returncode: int
    stdout: str = ""


@runtime_checkable
class CommandRunner(Protocol):
    def run(self, cmd: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> RunResult: ...


class CommandError(RuntimeError):
    def __init__(self, cmd: Sequence[str], returncode: int, output: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output
        message = f"Command failed ({returncode}): {' '.join(self.cmd)}"
        if output:
            message += f"\n\n{output}"
        super().__init__(message)


class SubprocessRunner:
    """Runs commands via subprocess. Default in production."""

    def run(self, cmd: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> RunResult:
        try:
            proc = subprocess.run(
                cmd, cwd=str(cwd), env=env, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True
            )
        except FileNotFoundError:
            return RunResult(returncode=NOT_FOUND_RETURNCODE, stdout=f"{cmd[0]}: command not found")
        return RunResult(returncode=proc.returncode, stdout=proc.stdout or "")


def redact(text: str, secrets: Sequence[str | None]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


def _tail(text: str, limit: int = 4000) -> str:
    return text[-limit:]


def run_checked(
    runner: CommandRunner,
    cmd: list[str],
    *,
    cwd: Path,
    env: dict[str, str] | None = None,
    secrets: Sequence[str | None] = (),
) -> RunResult:
    """
    Run `cmd` and raise `CommandError` on a non-zero exit.

    Anything in `secrets` is masked in logs and in the raised error.
    """
    shown = [redact(part, secrets) for part in cmd]
    logger.debug("$ %s (cwd=%s)", " ".join(shown), cwd)
    result = runner.run(cmd, cwd=cwd, env=env)
    output = redact(result.stdout, secrets)
    if output:
        logger.debug(output.rstrip())
    if result.returncode != 0:
        raise CommandError(shown, result.returncode, _tail(output))
    return result
