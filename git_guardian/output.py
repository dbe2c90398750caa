"""Local report rendering."""

from __future__ import annotations

from collections.abc import Sequence

from git_guardian.schema import CheckResult, TestResult, ValidationVerdict


def render_markdown_report(verdict: ValidationVerdict) -> str:
    """Render a minimal markdown report from a validation verdict."""
    status = "passed" if verdict.success else "failed"
    lines = ["# Push validation", "", f"Status: `{status}`", ""]
    lines.append("## Summary")
    lines.append(verdict.message or "No summary provided.")
    lines.append(f"- Commits: {verdict.commits}")
    lines.append(f"- Changed files: {verdict.changed_files}")
    for warning in verdict.warnings:
        lines.append(f"- Warning: {warning}")
    lines.append("")
    lines.extend(render_check_lines(verdict.checks))
    lines.append("")
    lines.extend(render_test_lines(verdict.tests))
    return "\n".join(lines)


def render_check_lines(results: Sequence[CheckResult]) -> list[str]:
    """Render the checks section."""
    lines = ["## Checks"]
    if not results:
        lines.append("- No checks ran.")
        return lines

    for result in results:
        target = f" on `{result.file}`" if result.file else ""
        lines.append(f"- **{result.severity}** `{result.tool}`{target}: {result.message}")
        for error in result.errors:
            lines.extend(f"    {line}" for line in error.splitlines())
    return lines


def render_test_lines(results: Sequence[TestResult]) -> list[str]:
    """Render the tests section."""
    lines = ["## Tests"]
    if not results:
        lines.append("- No tests ran.")
        return lines

    for result in results:
        outcome = "pass" if result.success else "FAIL"
        kind = "blocking" if result.blocking else "non-blocking"
        line = f"- **{outcome}** `{result.name}` ({kind}, {result.duration:.2f}s)"
        if result.error:
            line += f": {result.error}"
        lines.append(line)
    return lines
