from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from jobkit.job_types import JobSpec
from jobkit.kind_registry import JobKindRef, JobKindRegistry

from agentic_workflows.safe_outputs.common import GLOBAL_KEYS, MAIN_JOB_NAME, SafeOutputContext
from agentic_workflows.workflow.config import CompilerConfig
from agentic_workflows.workflow.errors import WorkflowValidationError
from agentic_workflows.workflow.spec import WorkflowSpec

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_safe_output_registry() -> JobKindRegistry:
    # Module order is the order jobs appear in the compiled workflow.
    from agentic_workflows.safe_outputs import (  # noqa: PLC0415
        assign_to_agent,
        code_scanning,
        dispatch_workflow,
        entity_ops,
        missing_reports,
        simple_kinds,
    )

    refs: list[JobKindRef] = []
    for module in (
        simple_kinds,
        entity_ops,
        assign_to_agent,
        dispatch_workflow,
        code_scanning,
        missing_reports,
    ):
        exported = getattr(module, "__all_kinds__", None)
        if isinstance(exported, (list, tuple)):
            refs.extend(exported)

    return JobKindRegistry.from_refs(refs)


@dataclass(frozen=True)
class DeclaredKind:
    ref: JobKindRef
    config: Any


def _check_target_repo(key: str, value: Any) -> None:
    if not isinstance(value, Mapping):
        return
    target_repo = value.get("target-repo")
    if isinstance(target_repo, str) and target_repo.strip() == "*":
        raise WorkflowValidationError(
            f'safe-outputs.{key}.target-repo: wildcard "*" is not allowed; '
            "name a specific repository (owner/repo)",
            field=f"safe-outputs.{key}.target-repo",
        )


def declared_kinds(
    raw: Mapping[str, Any], registry: JobKindRegistry | None = None
) -> list[DeclaredKind]:
    """Parse every declared kind, in registry order.

    Unknown keys are warned about (with suggestions) and skipped.
    """

    registry = registry or get_safe_output_registry()

    for key in raw:
        if key in GLOBAL_KEYS or registry.get(key) is not None:
            continue
        suggestions = registry.suggest(key)
        if suggestions:
            logger.warning(
                "Ignoring unknown safe-outputs kind: %s (did you mean: %s)",
                key,
                ", ".join(suggestions),
            )
        else:
            logger.warning("Ignoring unknown safe-outputs kind: %s", key)

    declared: list[DeclaredKind] = []
    for ref in registry:
        if ref.id not in raw:
            continue
        _check_target_repo(ref.id, raw[ref.id])
        config = ref.parse(raw, key=ref.id)
        if config is None:
            continue
        declared.append(DeclaredKind(ref=ref, config=config))
    logger.debug("Declared safe outputs: %s", ", ".join(d.ref.id for d in declared) or "<none>")
    return declared


def _global_env(raw: Mapping[str, Any]) -> dict[str, str]:
    env = raw.get("env")
    if env is None:
        return {}
    if not isinstance(env, Mapping):
        raise WorkflowValidationError(
            f"safe-outputs.env must be a mapping (type={type(env).__name__})",
            field="safe-outputs.env",
        )
    return {str(key): str(value) for key, value in env.items()}


def _optional_global_str(raw: Mapping[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise WorkflowValidationError(
            f"safe-outputs.{key} must be a string (type={type(value).__name__})",
            field=f"safe-outputs.{key}",
        )
    return value.strip() or None


def safe_output_context(
    spec: WorkflowSpec,
    config: CompilerConfig,
    *,
    main_job: str = MAIN_JOB_NAME,
) -> SafeOutputContext:
    raw = spec.safe_outputs
    staged = raw.get("staged", False)
    if not isinstance(staged, bool):
        raise WorkflowValidationError(
            f"safe-outputs.staged must be a boolean (type={type(staged).__name__})",
            field="safe-outputs.staged",
        )
    return SafeOutputContext(
        spec=spec,
        config=config,
        main_job=main_job,
        staged=staged,
        github_token=_optional_global_str(raw, "github-token"),
        extra_env=_global_env(raw),
        runs_on=_optional_global_str(raw, "runs-on"),
    )


def build_safe_output_jobs(ctx: SafeOutputContext) -> list[JobSpec]:
    """One job per declared kind, each needing the main job."""

    jobs: list[JobSpec] = []
    for declared in declared_kinds(ctx.spec.safe_outputs):
        jobs.append(declared.ref.build(ctx, declared.config))
    return jobs
