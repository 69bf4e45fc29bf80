"""dispatch-workflow: let the agent trigger other workflows via ``workflow_dispatch``.

Targets are resolved against ``.github/workflows`` next to the source markdown
at compile time; each target must already be compiled (``.lock.yml``) or be a
plain ``.yml`` workflow, and must accept ``workflow_dispatch``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from jobkit.config_namespace import ConfigNamespace
from jobkit.job_types import JobSpec
from jobkit.kind_registry import JobKindRef
from jobkit.permissions import contents_read_with

from agentic_workflows.safe_outputs.common import (
    SafeOutputContext,
    build_safe_output_job,
    max_env,
    output_namespace,
    parse_max,
    parse_optional_str,
    parse_str_list,
    step_outputs,
)
from agentic_workflows.workflow.errors import WorkflowValidationError
from agentic_workflows.workflow.spec import WorkflowSpec

logger = logging.getLogger(__name__)

CONFIG_KEY = "dispatch-workflow"
JOB_NAME = "dispatch_workflow"
ENV_PREFIX = "GH_AW_DISPATCH_WORKFLOW"
DEFAULT_MAX = 1
MAX_CAP = 50


@dataclass(frozen=True)
class DispatchWorkflowConfig:
    workflows: tuple[str, ...] = ()
    max: int | str | None = DEFAULT_MAX
    github_token: str | None = None
    target_repo: str | None = None
    allowed_repos: tuple[str, ...] = ()


def parse_dispatch_workflow_config(raw: Mapping[str, Any]) -> DispatchWorkflowConfig | None:
    """Accepts either a bare list of workflow names or a mapping with ``workflows:``."""

    if CONFIG_KEY not in raw:
        return None
    value = raw[CONFIG_KEY]
    if isinstance(value, (list, tuple)):
        workflows = tuple(item for item in value if isinstance(item, str))
        logger.debug("Found dispatch-workflow as list with %d workflows", len(workflows))
        return DispatchWorkflowConfig(workflows=workflows)

    ns = output_namespace(raw, CONFIG_KEY)
    if ns is None:
        return None

    target_repo = parse_optional_str(ns, "target-repo")
    if target_repo == "*":
        logger.warning("%s.target-repo: wildcard '*' is not allowed", ns.path)
        return None

    config = DispatchWorkflowConfig(
        workflows=_parse_workflow_names(ns),
        max=parse_max(ns, default=DEFAULT_MAX, cap=MAX_CAP),
        github_token=parse_optional_str(ns, "github-token"),
        target_repo=target_repo,
        allowed_repos=parse_str_list(ns, "allowed-repos"),
    )
    ns.log_unconsumed(logger)
    logger.debug("Parsed dispatch-workflow config: max=%s, workflows=%s", config.max, list(config.workflows))
    return config


def _parse_workflow_names(ns: ConfigNamespace) -> tuple[str, ...]:
    value = ns.get_raw("workflows", default=None)
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item for item in value if isinstance(item, str))


def _declares_workflow_dispatch(on_value: Any) -> bool:
    if isinstance(on_value, str):
        return on_value == "workflow_dispatch"
    if isinstance(on_value, list):
        return "workflow_dispatch" in on_value
    if isinstance(on_value, Mapping):
        return "workflow_dispatch" in on_value
    return False


def _compiled_triggers(path: Path) -> Any:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise WorkflowValidationError(
            f"dispatch-workflow: failed to parse {path.name}: {exc}",
            field=f"safe-outputs.{CONFIG_KEY}.workflows",
        ) from exc
    if not isinstance(payload, Mapping):
        return None
    # PyYAML reads a bare `on:` key as boolean True.
    if "on" in payload:
        return payload["on"]
    return payload.get(True)


def _empty_list_error() -> str:
    return "\n".join(
        [
            "dispatch-workflow: must specify at least one workflow in the list",
            "",
            "Example configuration:",
            "safe-outputs:",
            "  dispatch-workflow:",
            "    workflows: [workflow-name-1, workflow-name-2]",
            "",
            "Note: Use the workflow name without the .md extension.",
        ]
    )


def _self_reference_error(name: str) -> str:
    return "\n".join(
        [
            f"dispatch-workflow: self-reference not allowed (workflow '{name}' cannot dispatch itself)",
            "",
            "A workflow dispatching itself could cause infinite loops.",
            "If you need periodic execution, use a schedule trigger or workflow_dispatch instead.",
        ]
    )


def _not_found_error(name: str, workflows_dir: Path) -> str:
    return "\n".join(
        [
            f"dispatch-workflow: workflow '{name}' not found in {workflows_dir}",
            "",
            "Checked for:",
            f"  - {name}.md",
            f"  - {name}.lock.yml",
            f"  - {name}.yml",
            "",
            "To fix:",
            "1. Verify the workflow file exists in .github/workflows/",
            "2. Check the name is spelled correctly (names are case-sensitive)",
            "3. Use the workflow name without extension",
        ]
    )


def _not_compiled_error(name: str) -> str:
    return "\n".join(
        [
            f"dispatch-workflow: workflow '{name}' must be compiled first",
            "",
            f"The source file exists ({name}.md) but the compiled .lock.yml file is missing.",
            "",
            "To fix:",
            f"1. Compile the workflow: gh aw compile {name}",
            f"2. Commit the generated .lock.yml file ({name}.lock.yml)",
            "3. Make sure .lock.yml files are not listed in .gitignore",
        ]
    )


def _no_dispatch_trigger_error(name: str, filename: str) -> str:
    return "\n".join(
        [
            f"dispatch-workflow: workflow '{name}' does not support workflow_dispatch trigger",
            "",
            "To fix:",
            f"1. Add 'workflow_dispatch:' to the 'on:' section of {filename}",
            f"2. Recompile the workflow: gh aw compile {name}",
        ]
    )


def workflows_dir_for(source_path: str | Path) -> Path:
    """``<repo>/.github/workflows`` for a workflow under ``<repo>/.github/<dir>/``."""

    return Path(source_path).resolve().parent.parent / "workflows"


def validate_dispatch_workflow(spec: WorkflowSpec, config: DispatchWorkflowConfig) -> dict[str, str]:
    """Validate every dispatch target and return ``{name: extension}``.

    All problems are collected first; more than one is reported as a single
    aggregated error.
    """

    if not config.workflows:
        raise WorkflowValidationError(_empty_list_error(), field=f"safe-outputs.{CONFIG_KEY}.workflows")

    errors: list[str] = []
    files: dict[str, str] = {}
    workflows_dir = workflows_dir_for(spec.source_path) if spec.source_path is not None else None

    for name in config.workflows:
        if name == spec.workflow_id:
            errors.append(_self_reference_error(name))
            continue
        if workflows_dir is None:
            logger.debug("No source path; skipping file resolution for dispatch target %s", name)
            continue
        # Cross-repository targets live elsewhere; only the name can be checked here.
        if config.target_repo:
            continue

        md_path = workflows_dir / f"{name}.md"
        lock_path = workflows_dir / f"{name}.lock.yml"
        yml_path = workflows_dir / f"{name}.yml"

        if lock_path.is_file():
            compiled = lock_path
            files[name] = ".lock.yml"
        elif yml_path.is_file():
            compiled = yml_path
            files[name] = ".yml"
        elif md_path.is_file():
            errors.append(_not_compiled_error(name))
            continue
        else:
            errors.append(_not_found_error(name, workflows_dir))
            continue

        if not _declares_workflow_dispatch(_compiled_triggers(compiled)):
            files.pop(name, None)
            errors.append(_no_dispatch_trigger_error(name, compiled.name))

    if len(errors) == 1:
        raise WorkflowValidationError(errors[0], field=f"safe-outputs.{CONFIG_KEY}.workflows")
    if errors:
        body = "\n\n".join(f"{index}. {message}" for index, message in enumerate(errors, start=1))
        raise WorkflowValidationError(
            f"Found {len(errors)} dispatch-workflow errors:\n\n{body}",
            field=f"safe-outputs.{CONFIG_KEY}.workflows",
        )

    logger.debug("Resolved dispatch targets: %s", files)
    return files


def build_dispatch_workflow_job(ctx: SafeOutputContext, config: DispatchWorkflowConfig) -> JobSpec:
    files = validate_dispatch_workflow(ctx.spec, config)

    env: dict[str, str] = {}
    env.update(max_env(ENV_PREFIX, config.max))
    env[f"{ENV_PREFIX}S"] = json.dumps(list(config.workflows))
    if files:
        env[f"{ENV_PREFIX}_FILES"] = json.dumps(files, sort_keys=True)
    if config.target_repo:
        env[f"{ENV_PREFIX}_TARGET_REPO"] = config.target_repo
    if config.allowed_repos:
        env[f"{ENV_PREFIX}_ALLOWED_REPOS"] = ",".join(config.allowed_repos)

    return build_safe_output_job(
        ctx,
        job_name=JOB_NAME,
        step_name="Dispatch Workflows",
        step_id=JOB_NAME,
        type_tag=JOB_NAME,
        env=env,
        permissions=contents_read_with(actions="write"),
        outputs=step_outputs(JOB_NAME, ("dispatched_workflows",)),
        token=config.github_token,
        target_repo=config.target_repo,
    )


__all_kinds__ = [
    JobKindRef(
        id=CONFIG_KEY,
        job_name=JOB_NAME,
        parse=lambda raw, *, key: parse_dispatch_workflow_config(raw),
        build_job=build_dispatch_workflow_job,
        doc="Trigger other workflows of this repository through workflow_dispatch.",
        source=__name__,
    )
]
