"""Structured live logging for zero-drift pipeline runs."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# Plain-mode keys in print order; anything else only appears in trace output.
_PLAIN_FIELDS = (
    ("step_id", "step"),
    ("steps", "steps"),
    ("strategy", "strategy"),
    ("mode", "mode"),
    ("duration_s", "duration_s"),
    ("cache_hit", "cache_hit"),
    ("force", "force"),
)


def _plain_value(key: str, value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if key == "duration_s":
        return "{:.3f}".format(float(value))
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value) or "none"
    return str(value)


def _emit(payload: Dict[str, Any], trace: bool = False) -> None:
    record = dict(payload)
    record["ts_utc"] = _utc_now()
    if trace:
        sys.stdout.write(json.dumps(record, sort_keys=True) + "\n")
        sys.stdout.flush()
        return
    parts: List[str] = [str(record.get("event", "")).strip() or "pipeline"]
    for key, label in _PLAIN_FIELDS:
        value = record.get(key)
        if value is None or value == "":
            continue
        parts.append("{}={}".format(label, _plain_value(key, value)))
    summary = str(record.get("summary", "")).strip()
    if summary:
        parts.append(summary)
    sys.stdout.write("[zerodrift] {}\n".format(" ".join(parts)))
    sys.stdout.flush()


def pipeline_start(
    steps: Iterable[str],
    cache: str,
    mode: str,
    force: bool = False,
    preset_name: str = "",
    preset_description: str = "",
    trace: bool = False,
) -> None:
    if preset_name:
        label = preset_name
        if preset_description:
            label = "{}: {}".format(preset_name, preset_description)
        _emit({"event": "preset", "summary": label}, trace=trace)
    _emit(
        {
            "event": "pipeline_start",
            "steps": list(steps),
            "strategy": cache,
            "mode": mode,
            "force": bool(force),
        },
        trace=trace,
    )


def cache_event(step_id: str, cache_hit: bool, strategy: str, trace: bool = False) -> None:
    _emit(
        {
            "event": "cache_hit" if cache_hit else "cache_miss",
            "step_id": step_id,
            "strategy": strategy,
            "cache_hit": bool(cache_hit),
        },
        trace=trace,
    )


def step_start(step_id: str, name: str, command: str, verbose: bool = False, trace: bool = False) -> None:
    summary = name
    if verbose:
        summary = "{} command={}".format(name, command)
    _emit({"event": "step_start", "step_id": step_id, "summary": summary}, trace=trace)


def step_end(step_id: str, ok: bool, duration_s: float, cached: bool = False, trace: bool = False) -> None:
    _emit(
        {
            "event": "step_pass" if ok else "step_fail",
            "step_id": step_id,
            "duration_s": max(0.0, float(duration_s)),
            "cache_hit": bool(cached),
        },
        trace=trace,
    )


def command_output(step_id: str, stdout: str, stderr: str, trace: bool = False) -> None:
    """Echo captured output of a failed command."""

    if trace:
        _emit({"event": "command_output", "step_id": step_id, "stdout": stdout, "stderr": stderr}, trace=True)
        return
    if str(stdout or "").strip():
        sys.stdout.write("Output:\n{}\n".format(str(stdout).rstrip("\n")))
    if str(stderr or "").strip():
        sys.stdout.write("Error:\n{}\n".format(str(stderr).rstrip("\n")))
    sys.stdout.flush()


def fail_fast_stop(step_id: str, skipped: Iterable[str], trace: bool = False) -> None:
    remaining = ",".join(skipped)
    _emit(
        {
            "event": "fail_fast_stop",
            "step_id": step_id,
            "summary": "not_run={}".format(remaining or "none"),
        },
        trace=trace,
    )


def extras_start(count: int, trace: bool = False) -> None:
    _emit({"event": "extras_start", "summary": "commands={}".format(int(count))}, trace=trace)


def cache_cleared(cache_dir: str, trace: bool = False) -> None:
    _emit({"event": "cache_cleared", "summary": cache_dir}, trace=trace)


def cache_write_failed(step_id: str, reason: str, trace: bool = False) -> None:
    _emit({"event": "cache_write_failed", "step_id": step_id, "summary": reason}, trace=trace)


def profile_summary(total_time_s: float, cache_hits: int, cache_misses: int, trace: bool = False) -> None:
    _emit(
        {
            "event": "profile_summary",
            "summary": "total_s={:.3f} cache_hits={} cache_misses={}".format(
                max(0.0, float(total_time_s)),
                int(cache_hits),
                int(cache_misses),
            ),
        },
        trace=trace,
    )
