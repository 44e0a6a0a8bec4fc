"""Zero-drift validation pipeline orchestration.

Local runs and CI runs go through the same selection and execution code.
Sequential selections stop at the first failure; parallel selections always
attempt every step once and report results in declared order.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from . import log as xlog
from .cache import CacheManager
from .runners import BaseCommandRunner, ExecutionResult, ShellCommandRunner, StepState
from .steps import (
    VALIDATION_STEPS,
    CacheStrategy,
    ExecutionMode,
    ExtraCommand,
    Preset,
    StepId,
    UsageError,
    ValidationStep,
    get_preset,
    parse_step_list,
    resolve_cache_strategy,
    resolve_step_id,
)
from .summary import build_report


@dataclass(frozen=True)
class Selection:
    """Resolved steps, cache strategy and execution mode for one run."""

    steps: Tuple[StepId, ...]
    cache: CacheStrategy
    mode: ExecutionMode
    extra_commands: Tuple[ExtraCommand, ...] = ()
    preset: Optional[Preset] = None


@dataclass(frozen=True)
class RunContext:
    repo_root: str
    started: float
    force: bool = False
    verbose: bool = False
    trace: bool = False


def resolve_selection(
    preset: Optional[str] = None,
    steps: Optional[str] = None,
    cache: Optional[str] = None,
    parallel: bool = False,
) -> Selection:
    """Resolve CLI selection flags; raises UsageError before anything runs."""

    has_preset = bool(str(preset or "").strip())
    has_steps = steps is not None
    if has_preset and has_steps:
        raise UsageError("--preset and --steps are mutually exclusive")
    if not has_preset and not has_steps:
        raise UsageError("must specify either --preset or --steps")

    if has_preset:
        config = get_preset(preset)
        return Selection(
            steps=tuple(config.steps),
            cache=config.cache,
            mode=config.mode,
            extra_commands=tuple(config.extra_commands),
            preset=config,
        )

    step_list = tuple(parse_step_list(steps))
    strategy = resolve_cache_strategy(cache) if cache else CacheStrategy.SMART
    mode = ExecutionMode.PARALLEL if parallel else ExecutionMode.SEQUENTIAL
    return Selection(steps=step_list, cache=strategy, mode=mode)


def _error_text(stdout: str, stderr: str, exit_code: int) -> str:
    text = str(stderr or "").strip() or str(stdout or "").strip()
    return text or "exited with code {}".format(int(exit_code))


class ValidationPipeline:
    """Runs a resolved selection under the cache manager's guidance."""

    def __init__(
        self,
        context: RunContext,
        cache_manager: Optional[CacheManager] = None,
        runner: Optional[BaseCommandRunner] = None,
        steps: Mapping[StepId, ValidationStep] = VALIDATION_STEPS,
    ):
        self.context = context
        self.cache = cache_manager or CacheManager(context.repo_root, trace=context.trace)
        self.runner = runner or ShellCommandRunner(context.repo_root, verbose=context.verbose)
        self.steps = steps
        self.cache_hits = 0
        self.cache_misses = 0

    def _step(self, step_id: StepId) -> ValidationStep:
        token = resolve_step_id(step_id)
        step = self.steps.get(token)
        if step is None:
            raise UsageError("unknown validation step: {}".format(token.value))
        return step

    def _check_cache(self, step: ValidationStep, strategy: CacheStrategy) -> Optional[ExecutionResult]:
        invalidate = self.cache.should_invalidate(step.step_id, strategy, force=self.context.force)
        xlog.cache_event(step.step_id.value, not invalidate, getattr(strategy, "value", str(strategy)), trace=self.context.trace)
        if invalidate:
            self.cache_misses += 1
            return None
        self.cache_hits += 1
        xlog.step_end(step.step_id.value, True, 0.0, cached=True, trace=self.context.trace)
        return ExecutionResult(
            step_id=step.step_id.value,
            name=step.name,
            state=StepState.CACHED,
            command=step.command,
            remediation=step.remediation,
        )

    async def _spawn(self, step_id: str, name: str, command: str, remediation: str, extra: bool = False) -> ExecutionResult:
        trace = self.context.trace
        xlog.step_start(step_id, name, command, verbose=self.context.verbose, trace=trace)
        outcome = await self.runner.run(command)
        xlog.step_end(step_id, outcome.ok, outcome.duration_s, trace=trace)
        if outcome.ok:
            return ExecutionResult(
                step_id=step_id,
                name=name,
                state=StepState.PASSED,
                duration_s=outcome.duration_s,
                command=command,
                remediation=remediation,
                extra=extra,
            )
        xlog.command_output(step_id, outcome.stdout, outcome.stderr, trace=trace)
        return ExecutionResult(
            step_id=step_id,
            name=name,
            state=StepState.FAILED,
            duration_s=outcome.duration_s,
            command=command,
            error=_error_text(outcome.stdout, outcome.stderr, outcome.exit_code),
            remediation=remediation,
            extra=extra,
        )

    async def _execute_step(self, step: ValidationStep, strategy: CacheStrategy) -> ExecutionResult:
        result = await self._spawn(step.step_id.value, step.name, step.command, step.remediation)
        if result.success:
            self.cache.record_success(step.step_id, strategy)
        return result

    async def run_step(self, step_id: StepId, strategy: CacheStrategy) -> ExecutionResult:
        """Run one step: a cache hit short-circuits, a miss spawns its command."""

        step = self._step(step_id)
        cached = self._check_cache(step, strategy)
        if cached is not None:
            return cached
        return await self._execute_step(step, strategy)

    async def run_sequential(self, step_ids: Sequence[StepId], strategy: CacheStrategy) -> Tuple[List[ExecutionResult], List[str]]:
        """Run steps in declared order, stopping at the first failure.

        Returns the attempted results and the ids of steps never started.
        """

        results: List[ExecutionResult] = []
        ordered = [self._step(item) for item in step_ids]
        for index, step in enumerate(ordered):
            result = await self.run_step(step.step_id, strategy)
            results.append(result)
            if not result.success:
                not_run = [row.step_id.value for row in ordered[index + 1:]]
                xlog.fail_fast_stop(step.step_id.value, not_run, trace=self.context.trace)
                return results, not_run
        return results, []

    async def run_parallel(self, step_ids: Sequence[StepId], strategy: CacheStrategy) -> List[ExecutionResult]:
        """Resolve every cache decision, then run all misses concurrently to completion."""

        ordered = [self._step(item) for item in step_ids]
        decided: List[Optional[ExecutionResult]] = [self._check_cache(step, strategy) for step in ordered]
        pending = [(index, step) for index, step in enumerate(ordered) if decided[index] is None]
        outcomes = await asyncio.gather(*(self._execute_step(step, strategy) for _index, step in pending))
        for (index, _step), result in zip(pending, outcomes):
            decided[index] = result
        return [row for row in decided if row is not None]

    async def run_extras(self, extras: Sequence[ExtraCommand]) -> Tuple[List[ExecutionResult], List[str]]:
        results: List[ExecutionResult] = []
        if not extras:
            return results, []
        xlog.extras_start(len(extras), trace=self.context.trace)
        for index, extra in enumerate(extras):
            result = await self._spawn(extra.extra_id, extra.name, extra.command, extra.remediation, extra=True)
            results.append(result)
            if not result.success:
                not_run = [row.extra_id for row in extras[index + 1:]]
                xlog.fail_fast_stop(extra.extra_id, not_run, trace=self.context.trace)
                return results, not_run
        return results, []

    async def run(self, selection: Selection) -> Dict[str, object]:
        context = self.context
        for step_id in selection.steps:
            self._step(step_id)

        if context.force:
            self.cache.clear()

        preset = selection.preset
        xlog.pipeline_start(
            [StepId(item).value for item in selection.steps],
            selection.cache.value,
            selection.mode.value,
            force=context.force,
            preset_name=preset.name if preset else "",
            preset_description=preset.description if preset else "",
            trace=context.trace,
        )

        not_run: List[str] = []
        halted_at = ""
        if selection.mode == ExecutionMode.PARALLEL:
            results = await self.run_parallel(selection.steps, selection.cache)
        else:
            results, not_run = await self.run_sequential(selection.steps, selection.cache)
            if not_run:
                halted_at = results[-1].step_id

        if results and all(row.success for row in results) and selection.extra_commands:
            extra_results, not_run = await self.run_extras(selection.extra_commands)
            if not_run:
                halted_at = extra_results[-1].step_id
            results = results + extra_results

        total_s = max(0.0, time.perf_counter() - context.started)
        xlog.profile_summary(total_s, self.cache_hits, self.cache_misses, trace=context.trace)
        report = build_report(results, total_s, halted_at=halted_at, not_run=not_run)
        report["cache_hits"] = self.cache_hits
        report["cache_misses"] = self.cache_misses
        return report
