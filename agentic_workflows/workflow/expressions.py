"""Helpers for building ``if:`` conditions and ``${{ }}`` references."""

from __future__ import annotations

from typing import Iterable


def wrap(expression: str) -> str:
    return "${{ " + expression.strip() + " }}"


def unwrap(expression: str) -> str:
    text = expression.strip()
    if text.startswith("${{") and text.endswith("}}"):
        return text[3:-2].strip()
    return text


def _group(expression: str, *, operator: str) -> str:
    text = unwrap(expression)
    # Parts already joined by the same operator need no parentheses.
    other = " && " if operator == " || " else " || "
    if other in text:
        return f"({text})"
    return text


def and_(*parts: str) -> str:
    items = [part for part in parts if part and part.strip()]
    return " && ".join(_group(part, operator=" && ") for part in items)


def or_(*parts: str) -> str:
    items = [part for part in parts if part and part.strip()]
    return " || ".join(_group(part, operator=" || ") for part in items)


def not_cancelled() -> str:
    return "!cancelled()"


def step_output(step_id: str, key: str) -> str:
    return wrap(f"steps.{step_id}.outputs.{key}")


def job_output(job_name: str, key: str) -> str:
    return f"needs.{job_name}.outputs.{key}"


def job_not_skipped(job_name: str) -> str:
    return f"needs.{job_name}.result != 'skipped'"


def output_type_present(main_job: str, type_tag: str) -> str:
    return f"contains({job_output(main_job, 'output_types')}, '{type_tag}')"


def safe_output_condition(main_job: str, type_tag: str) -> str:
    """Run only when the agent job emitted an item of this type."""

    return and_(not_cancelled(), job_not_skipped(main_job), output_type_present(main_job, type_tag))


def any_present(paths: Iterable[str]) -> str:
    return or_(*paths)


def activated_condition(pre_activation_job: str) -> str:
    return f"{job_output(pre_activation_job, 'activated')} == 'true'"
