"""Child-process runners and per-step result records."""

from __future__ import annotations

import asyncio
import time
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

UNRESOLVABLE_EXIT_CODE = 127


class StepState(str, Enum):
    CACHED = "cached"
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandOutcome:
    """Normalized outcome of one spawned command."""

    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration_s: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class ExecutionResult:
    """Per-run record of one step or extra command."""

    step_id: str
    name: str
    state: StepState
    duration_s: float = 0.0
    command: str = ""
    error: str = ""
    remediation: str = ""
    extra: bool = False

    @property
    def success(self) -> bool:
        return self.state in (StepState.CACHED, StepState.PASSED)

    @property
    def cached(self) -> bool:
        return self.state == StepState.CACHED

    def to_dict(self) -> Dict[str, object]:
        return {
            "step_id": self.step_id,
            "name": self.name,
            "state": self.state.value,
            "success": self.success,
            "cached": self.cached,
            "duration_s": float(self.duration_s),
            "command": self.command,
            "error": self.error,
            "extra": bool(self.extra),
        }


class BaseCommandRunner(metaclass=ABCMeta):
    """Spawns one shell command and awaits its completion."""

    @abstractmethod
    async def run(self, command: str) -> CommandOutcome:
        """Run ``command`` to completion; failures are returned, never raised."""


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


class ShellCommandRunner(BaseCommandRunner):
    """Runs commands through the system shell from the repository root.

    Output is captured unless ``verbose`` is set, in which case the child
    inherits this process's stdout and stderr.
    """

    def __init__(self, repo_root: str, verbose: bool = False, env: Optional[Dict[str, str]] = None):
        self.repo_root = repo_root
        self.verbose = bool(verbose)
        self.env = dict(env) if env is not None else None

    async def run(self, command: str) -> CommandOutcome:
        stream = None if self.verbose else asyncio.subprocess.PIPE
        started = time.perf_counter()
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=self.repo_root,
                env=self.env,
                stdout=stream,
                stderr=stream,
            )
            stdout, stderr = await proc.communicate()
        except OSError as exc:
            return CommandOutcome(
                command=command,
                exit_code=UNRESOLVABLE_EXIT_CODE,
                stdout="",
                stderr="command_unresolvable: {}".format(exc),
                duration_s=max(0.0, time.perf_counter() - started),
            )
        return CommandOutcome(
            command=command,
            exit_code=int(proc.returncode if proc.returncode is not None else 1),
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            duration_s=max(0.0, time.perf_counter() - started),
        )
