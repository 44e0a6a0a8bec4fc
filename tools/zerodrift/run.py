#!/usr/bin/env python3
"""Zero-drift validation pipeline entrypoint shared by local hooks and CI."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import time
import traceback


THIS_DIR = os.path.dirname(os.path.abspath(__file__))
REPO_ROOT_HINT = os.path.normpath(os.path.join(THIS_DIR, "..", ".."))
if REPO_ROOT_HINT not in sys.path:
    sys.path.insert(0, REPO_ROOT_HINT)

from tools.zerodrift.cache import CacheManager  # noqa: E402
from tools.zerodrift.pipeline import RunContext, ValidationPipeline, resolve_selection  # noqa: E402
from tools.zerodrift.runners import ShellCommandRunner  # noqa: E402
from tools.zerodrift.steps import VALIDATION_PRESETS, UsageError, describe_steps, step_ids  # noqa: E402

CACHE_DIR_ENV_KEY = "ZERODRIFT_CACHE_DIR"
TRACE_ENV_KEY = "ZERODRIFT_TRACE"
DEBUG_ENV_KEY = "ZERODRIFT_DEBUG"
CACHE_CHOICES = ("none", "smart", "config-aware")

_EPILOG = """\
presets:
{presets}

examples:
  zerodrift --preset quick
  zerodrift --preset ci --force
  zerodrift --steps lint,test --parallel
  zerodrift --clear-cache

cache strategies:
  none           never use cache (slowest, most accurate)
  smart          reserved; currently never trusts a previous result
  config-aware   skip a step while its config files are unchanged since it last passed

--force deletes every cache entry before running, not only those of the selected steps.
"""


class _ArgumentParser(argparse.ArgumentParser):
    """argparse with usage errors mapped to exit code 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, "{}: error: {}\n".format(self.prog, message))


def _env_flag(key: str) -> bool:
    return str(os.environ.get(key, "")).strip().lower() in ("1", "true", "yes", "on")


def _repo_root(value: str) -> str:
    if value:
        return os.path.normpath(os.path.abspath(value))
    return os.getcwd()


def _preset_lines() -> str:
    lines = []
    for preset_id, preset in VALIDATION_PRESETS.items():
        lines.append("  {:<12} {} ({}, {})".format(preset_id.value, describe_steps(preset.steps), preset.mode.value, preset.cache.value))
    return "\n".join(lines)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="zerodrift",
        description="Run lint, type-check, test and build with identical logic locally and in CI.",
        epilog=_EPILOG.format(presets=_preset_lines()),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--preset", default=None, help="named step bundle to run")
    parser.add_argument(
        "--steps",
        default=None,
        help="comma-separated step list: {}".format(",".join(step_ids())),
    )
    parser.add_argument("--cache", default=None, choices=CACHE_CHOICES, help="cache strategy for --steps runs (default: smart)")
    parser.add_argument("--parallel", action="store_true", help="run --steps concurrently")
    parser.add_argument("--force", action="store_true", help="run every step fresh; clears the whole cache, including entries of steps not selected")
    parser.add_argument("--verbose", "-v", action="store_true", help="stream command output instead of capturing it")
    parser.add_argument("--clear-cache", action="store_true", help="delete the validation cache and exit")
    parser.add_argument("--repo-root", default="", help="repository root (default: current directory)")
    parser.add_argument("--trace", action="store_true", help="emit structured JSON events")
    return parser


def main(argv=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    repo_root = _repo_root(args.repo_root)
    trace = bool(args.trace or _env_flag(TRACE_ENV_KEY))
    cache_manager = CacheManager(repo_root, cache_dir=os.environ.get(CACHE_DIR_ENV_KEY, ""), trace=trace)

    if args.clear_cache:
        cache_manager.clear()
        return 0

    try:
        selection = resolve_selection(
            preset=args.preset,
            steps=args.steps,
            cache=args.cache,
            parallel=args.parallel,
        )
    except UsageError as exc:
        sys.stderr.write("zerodrift: error: {}\n".format(exc))
        return 1

    context = RunContext(
        repo_root=repo_root,
        started=time.perf_counter(),
        force=bool(args.force),
        verbose=bool(args.verbose),
        trace=trace,
    )
    pipeline = ValidationPipeline(
        context,
        cache_manager=cache_manager,
        runner=ShellCommandRunner(repo_root, verbose=context.verbose),
    )
    try:
        report = asyncio.run(pipeline.run(selection))
    except UsageError as exc:
        sys.stderr.write("zerodrift: error: {}\n".format(exc))
        return 1
    except Exception as exc:  # pragma: no cover
        sys.stderr.write("zerodrift: pipeline error: {}\n".format(exc))
        if _env_flag(DEBUG_ENV_KEY):
            traceback.print_exc()
        return 1

    for line in report.get("summary_lines") or []:
        print(line)
    return int(report.get("exit_code", 1))


if __name__ == "__main__":
    raise SystemExit(main())
