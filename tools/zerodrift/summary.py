"""Run summary aggregation and remediation hints."""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from .runners import ExecutionResult

GENERIC_HINT = "Re-run with --verbose to see the full command output"


def _failure_hints(results: Iterable[ExecutionResult]) -> List[Dict[str, str]]:
    out = []
    for result in results:
        if result.success:
            continue
        out.append(
            {
                "step_id": result.step_id,
                "hint": str(result.remediation or "").strip() or GENERIC_HINT,
            }
        )
    return out


def render_summary(report: Dict[str, object]) -> List[str]:
    lines = [
        "",
        "Validation Summary",
        "==================",
        "Passed: {}".format(int(report.get("passed", 0))),
        "Failed: {}".format(int(report.get("failed", 0))),
        "Cached: {}".format(int(report.get("cached", 0))),
        "Total: {:.1f}s".format(float(report.get("total_seconds", 0.0))),
    ]
    halted_at = str(report.get("halted_at", "")).strip()
    if halted_at:
        not_run = [str(item) for item in (report.get("not_run") or [])]
        lines.append("Stopped at: {} (not run: {})".format(halted_at, ", ".join(not_run) or "none"))

    if int(report.get("exit_code", 1)) == 0:
        lines.extend(["", "All validation checks passed!"])
        return lines

    lines.extend(["", "Validation failed. Please fix the issues above."])
    hints = report.get("remediation") or []
    if hints:
        lines.extend(["", "Quick fixes:"])
        for row in hints:
            lines.append("  - {}: {}".format(row.get("step_id", ""), row.get("hint", "")))
    return lines


def build_report(
    results: Sequence[ExecutionResult],
    total_seconds: float,
    halted_at: str = "",
    not_run: Sequence[str] = (),
) -> Dict[str, object]:
    """Aggregate per-step results into the final verdict.

    Cached steps count as passed. The exit code is 0 only when every
    attempted step and extra succeeded and nothing was left unrun.
    """

    passed = sum(1 for row in results if row.success)
    failed = sum(1 for row in results if not row.success)
    cached = sum(1 for row in results if row.cached)
    ok = bool(results) and failed == 0 and not not_run
    report: Dict[str, object] = {
        "results": [row.to_dict() for row in results],
        "passed": passed,
        "failed": failed,
        "cached": cached,
        "halted_at": str(halted_at or ""),
        "not_run": list(not_run),
        "total_seconds": max(0.0, float(total_seconds)),
        "remediation": _failure_hints(results),
        "exit_code": 0 if ok else 1,
    }
    report["summary_lines"] = render_summary(report)
    return report
