"""Human-readable run report rendering for CLI output."""

from __future__ import annotations

import json
from typing import Any

from core.orchestrator.runner import BatchStatus
from core.remote.models import CaseFeedback, Diagnostic, RunResult

_SEPARATOR = "-" * 63


def render_run_report(
    result: RunResult,
    line_adjustments: dict[str, int] | None = None,
    *,
    preview_only: bool = False,
) -> str:
    """Render one run outcome; line numbers are shifted back to the stored fixture."""

    adjustments = line_adjustments or {}
    lines: list[str] = []

    if result.status == "internal_error":
        lines.append(
            "Internal error. Try to run the test again or contact support if the issue persists."
        )
        return "\n".join(lines)
    if result.status == "test_error":
        lines.append("Ran into an error and couldn't complete test run")
        lines.append(result.error_message or "no error message")
        return "\n".join(lines)
    if result.status != "completed":
        lines.append(f"Run stopped with status {result.status}")
        return "\n".join(lines)

    failing = result.failing_cases()
    if not failing:
        if preview_only:
            lines.append("SUCCESSFULLY RENDERED HTML (SKIPPED TESTS)")
        else:
            lines.append("ALL TESTS HAVE PASSED")
        return "\n".join(lines)

    lines.append(f"{len(failing)} TEST{'S' if len(failing) > 1 else ''} FAILED")
    for case_name in failing:
        feedback = result.tests[case_name]
        lines.append(_SEPARATOR)
        lines.append(case_name)
        lines.extend(_case_lines(feedback, adjustments.get(case_name, 0)))
    return "\n".join(lines)


def render_batch_status(batch: BatchStatus) -> str:
    lines: list[str] = []
    for item in batch.handles:
        if item.status == "PASSED":
            lines.append(f"{item.handle}: PASSED")
        elif item.failed_cases:
            lines.append(f"{item.handle}: FAILED [{', '.join(item.failed_cases)}]")
        else:
            lines.append(f"{item.handle}: FAILED ({item.error or 'unknown error'})")
    lines.append(batch.status)
    return "\n".join(lines)


def _case_lines(feedback: CaseFeedback, adjustment: int) -> list[str]:
    lines: list[str] = []
    if feedback.reconciled is None:
        lines.append("Reconciliation expectation passed")
    if not feedback.results:
        lines.append("All result expectations passed")
    if not feedback.rollforwards:
        lines.append("All rollforward expectations passed")

    if feedback.reconciled is not None:
        diagnostic = feedback.reconciled
        lines.append("Reconciliation expectation failed")
        lines.append(_line_number(diagnostic, adjustment))
        lines.append(
            f"got {_display(diagnostic.got)} but expected {_display(diagnostic.expected)}"
        )
        lines.append("")
    if feedback.results:
        lines.extend(_diagnostic_list(feedback.results, "result", adjustment))
    if feedback.rollforwards:
        lines.extend(_diagnostic_list(feedback.rollforwards, "rollforward", adjustment))
    return lines


def _diagnostic_list(items: dict[str, Diagnostic], label: str, adjustment: int) -> list[str]:
    count = len(items)
    lines = [f"{count} {label} expectation{'s' if count > 1 else ''} failed"]
    for name, diagnostic in items.items():
        lines.append(_line_number(diagnostic, adjustment))
        got, expected = diagnostic.got, diagnostic.expected
        if isinstance(got, dict):
            got_text = "\n" + "".join(f"{key}: {_display(value)}\n" for key, value in got.items())
            expected_text = json.dumps(expected, indent=2, ensure_ascii=False)
        else:
            got_text, expected_text = _display(got), _display(expected)
        lines.append(
            f"For {label} {name} got {got_text} ({value_type(got)}) "
            f"but expected {expected_text} ({value_type(expected)})"
        )
    lines.append("")
    return lines


def _line_number(diagnostic: Diagnostic, adjustment: int) -> str:
    if diagnostic.line_number is None:
        return "At line number unknown"
    return f"At line number {diagnostic.line_number + adjustment}"


def value_type(value: Any) -> str:
    """Name a diagnostic value's type; the engine's `nothing` marker is `blank`."""

    if value == "nothing":
        return "blank"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
