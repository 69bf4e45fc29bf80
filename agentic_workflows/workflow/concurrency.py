"""Workflow- and job-level concurrency groups.

Command-triggered workflows serialize per issue/PR thread; every other workflow
serializes globally. Pull-request runs cancel their in-flight predecessor unless
they were started by a command.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from jobkit.job_types import ConcurrencySpec

from agentic_workflows.workflow.spec import WorkflowSpec, thaw

logger = logging.getLogger(__name__)

GROUP_NAMESPACE = "gh-aw"
WORKFLOW_IDENTITY = "${{ github.workflow }}"
THREAD_NUMBER_EXPRESSION = "${{ github.event.issue.number || github.event.pull_request.number }}"


def build_group_key(spec: WorkflowSpec, is_command_trigger: bool) -> list[str]:
    keys = [GROUP_NAMESPACE, WORKFLOW_IDENTITY]
    if is_command_trigger:
        keys.append(THREAD_NUMBER_EXPRESSION)
    return keys


def should_cancel_in_progress(spec: WorkflowSpec, is_command_trigger: bool) -> bool:
    if is_command_trigger:
        return False
    return spec.triggers.is_pull_request


def build_job_level_group_key(spec: WorkflowSpec) -> str:
    if spec.triggers.has_special_trigger:
        logger.debug("Workflow %s has special triggers; no job-level group", spec.workflow_id)
        return ""
    if not spec.engine_id:
        return ""
    return f"{GROUP_NAMESPACE}-{spec.engine_id}-{WORKFLOW_IDENTITY}"


def _explicit_concurrency(raw: Any, *, path: str) -> ConcurrencySpec | dict[str, Any] | str:
    if isinstance(raw, str):
        return ConcurrencySpec(group=raw)
    if isinstance(raw, Mapping):
        value = thaw(raw)
        if set(value.keys()) <= {"group", "cancel-in-progress"} and isinstance(value.get("group"), str):
            cancel = value.get("cancel-in-progress", False)
            if isinstance(cancel, bool):
                return ConcurrencySpec(group=value["group"], cancel_in_progress=cancel)
        return value
    raise TypeError(f"{path} must be a string or mapping (type={type(raw).__name__})")


def workflow_concurrency(
    spec: WorkflowSpec, is_command_trigger: bool
) -> ConcurrencySpec | dict[str, Any] | str:
    """Workflow-level concurrency; an explicit frontmatter value wins verbatim."""

    if spec.concurrency is not None:
        logger.debug("Using explicit concurrency from %s", spec.workflow_id)
        return _explicit_concurrency(spec.concurrency, path="concurrency")

    group = "-".join(build_group_key(spec, is_command_trigger))
    cancel = should_cancel_in_progress(spec, is_command_trigger)
    logger.debug("Concurrency group for %s: %s (cancel=%s)", spec.workflow_id, group, cancel)
    return ConcurrencySpec(group=group, cancel_in_progress=cancel)


def job_concurrency(spec: WorkflowSpec) -> ConcurrencySpec | None:
    """Agent job concurrency; ``engine.concurrency`` wins over the default group."""

    if spec.engine_concurrency is not None:
        explicit = _explicit_concurrency(spec.engine_concurrency, path="engine.concurrency")
        if isinstance(explicit, ConcurrencySpec):
            return explicit
        raise ValueError(
            "engine.concurrency must be a group string or a mapping with group/cancel-in-progress"
        )
    group = build_job_level_group_key(spec)
    if not group:
        return None
    return ConcurrencySpec(group=group)
