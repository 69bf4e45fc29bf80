"""Shared parsing and job-building helpers for safe-output kinds.

Every kind module parses its declaration through a `ConfigNamespace` and builds
its job with `build_safe_output_job`, so all safe-output jobs share the same step
skeleton, gating condition and metadata env.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable

from jobkit.config_namespace import ConfigNamespace
from jobkit.job_types import JobSpec, Step
from jobkit.permissions import PermissionSet

from agentic_workflows.workflow import expressions
from agentic_workflows.workflow.config import CompilerConfig
from agentic_workflows.workflow.spec import WorkflowSpec

logger = logging.getLogger(__name__)

MAIN_JOB_NAME = "agent"
AGENT_OUTPUT_ARTIFACT = "agent_output.json"
AGENT_OUTPUT_DIR = "/tmp/gh-aw/safeoutputs/"
ACTIONS_DIR = "/tmp/gh-aw/actions"
DEFAULT_TOKEN_EXPRESSION = "${{ secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"

# Keys under `safe-outputs:` that configure all kinds rather than declaring one.
GLOBAL_KEYS: tuple[str, ...] = (
    "staged",
    "github-token",
    "env",
    "runs-on",
    "messages",
    "allowed-domains",
)


@dataclass(frozen=True)
class SafeOutputContext:
    """What every kind builder sees besides its own parsed config."""

    spec: WorkflowSpec
    config: CompilerConfig = field(default_factory=CompilerConfig)
    main_job: str = MAIN_JOB_NAME
    staged: bool = False
    github_token: str | None = None
    extra_env: Mapping[str, str] = field(default_factory=dict)
    runs_on: str | None = None


@dataclass(frozen=True)
class TargetConfig:
    target: str | None = None
    target_repo: str | None = None
    allowed_repos: tuple[str, ...] = ()

    def env(self, prefix: str) -> dict[str, str]:
        out: dict[str, str] = {}
        if self.target:
            out[f"{prefix}_TARGET"] = self.target
        if self.target_repo:
            out[f"{prefix}_TARGET_REPO"] = self.target_repo
        if self.allowed_repos:
            out[f"{prefix}_ALLOWED_REPOS"] = ",".join(self.allowed_repos)
        return out


@dataclass(frozen=True)
class FilterConfig:
    required_labels: tuple[str, ...] = ()
    required_title_prefix: str | None = None

    def env(self, prefix: str) -> dict[str, str]:
        out: dict[str, str] = {}
        if self.required_labels:
            out[f"{prefix}_REQUIRED_LABELS"] = ",".join(self.required_labels)
        if self.required_title_prefix:
            out[f"{prefix}_REQUIRED_TITLE_PREFIX"] = self.required_title_prefix
        return out


def output_namespace(raw: Mapping[str, Any], key: str) -> ConfigNamespace | None:
    """Namespace for one declaration; ``None`` when absent or set to ``false``."""

    if key not in raw:
        return None
    value = raw[key]
    if value is False:
        logger.debug("%s explicitly disabled", key)
        return None
    path = f"safe-outputs.{key}"
    if value is None or value is True:
        return ConfigNamespace.empty(path=path)
    if not isinstance(value, Mapping):
        logger.warning(
            "Ignoring malformed %s configuration (type=%s); using defaults",
            path,
            type(value).__name__,
        )
        return ConfigNamespace.empty(path=path)
    return ConfigNamespace(dict(value), path=path)


def _tolerant(ns: ConfigNamespace, key: str, parse: Any, fallback: Any) -> Any:
    try:
        return parse()
    except (TypeError, ValueError) as exc:
        logger.warning("Ignoring invalid %s.%s: %s", ns.path, key, exc)
        return fallback


def parse_max(
    ns: ConfigNamespace,
    *,
    default: int,
    fixed_limit: int | None = None,
    cap: int | None = None,
) -> int | str | None:
    """Effective ``max``: missing or 0 uses the default; 0 as default means unlimited.

    Fixed-limit kinds are clamped silently to their limit whatever the user wrote.
    """

    value = _tolerant(ns, "max", lambda: ns.get_templatable_int("max", default=None, min_value=0), None)
    if value is None or value == 0:
        value = default
    if fixed_limit is not None:
        if value != fixed_limit:
            logger.debug("Clamping %s.max=%s to fixed limit %d", ns.path, value, fixed_limit)
        return fixed_limit
    if cap is not None and isinstance(value, int) and value > cap:
        logger.debug("Capping %s.max=%d at %d", ns.path, value, cap)
        value = cap
    return value or None


def parse_optional_str(ns: ConfigNamespace, key: str) -> str | None:
    return _tolerant(ns, key, lambda: ns.get_str(key, default=None, allow_empty=True), None) or None


def parse_str_list(ns: ConfigNamespace, key: str) -> tuple[str, ...]:
    return tuple(
        _tolerant(
            ns,
            key,
            lambda: ns.get_list_str(key, default=[], allow_empty=True, allow_scalar=True),
            [],
        )
    )


def parse_optional_bool(ns: ConfigNamespace, key: str, *, default: bool | None = None) -> bool | None:
    if not ns.has(key):
        return default
    return _tolerant(ns, key, lambda: ns.get_bool(key), default)


def parse_target(ns: ConfigNamespace) -> TargetConfig | None:
    """Target filter; ``None`` marks an invalid wildcard ``target-repo``."""

    target_raw = ns.get_raw("target", default=None)
    target = str(target_raw).strip() if target_raw is not None else None
    target_repo = parse_optional_str(ns, "target-repo")
    if target_repo == "*":
        logger.warning("%s.target-repo: wildcard '*' is not allowed", ns.path)
        return None
    return TargetConfig(
        target=target or None,
        target_repo=target_repo,
        allowed_repos=parse_str_list(ns, "allowed-repos"),
    )


def parse_filters(ns: ConfigNamespace) -> FilterConfig:
    return FilterConfig(
        required_labels=parse_str_list(ns, "required-labels"),
        required_title_prefix=parse_optional_str(ns, "required-title-prefix"),
    )


def max_env(prefix: str, max_value: int | str | None) -> dict[str, str]:
    if max_value is None or max_value == 0:
        return {}
    return {f"{prefix}_MAX": str(max_value)}


def json_list_env(name: str, values: Iterable[str]) -> dict[str, str]:
    return {name: json.dumps(list(values))}


def metadata_env(spec: WorkflowSpec) -> dict[str, str]:
    out = {"GH_AW_WORKFLOW_NAME": spec.name}
    if spec.source:
        out["GH_AW_WORKFLOW_SOURCE"] = spec.source
    if spec.tracker_id:
        out["GH_AW_TRACKER_ID"] = spec.tracker_id
    return out


def staged_env(ctx: SafeOutputContext, *, target_repo: str | None) -> dict[str, str]:
    if ctx.staged and not ctx.config.trial_mode and not target_repo:
        return {"GH_AW_SAFE_OUTPUTS_STAGED": "true"}
    return {}


def setup_steps(config: CompilerConfig, *, checked_out: bool = False) -> list[Step]:
    """Make the setup action available and run it.

    In dev mode the action lives in this repository, so it must be checked out first.
    """

    steps: list[Step] = []
    if not config.is_release and not checked_out:
        steps.append(
            {
                "name": "Checkout actions folder",
                "uses": "actions/checkout@v5",
                "with": {"sparse-checkout": "actions", "persist-credentials": False},
            }
        )
    steps.append(
        {
            "name": "Setup Scripts",
            "uses": config.setup_action_uses,
            "with": {"destination": ACTIONS_DIR},
        }
    )
    return steps


def script_for(script_name: str) -> str:
    return f"const {{ main }} = require('{ACTIONS_DIR}/{script_name}.cjs'); await main();"


def build_safe_output_job(
    ctx: SafeOutputContext,
    *,
    job_name: str,
    step_name: str,
    step_id: str,
    type_tag: str,
    env: Mapping[str, str],
    permissions: PermissionSet,
    outputs: Mapping[str, str] | None = None,
    token: str | None = None,
    target_repo: str | None = None,
    extra_condition: str | None = None,
    pre_steps: Iterable[Step] = (),
    post_steps: Iterable[Step] = (),
    script_name: str | None = None,
) -> JobSpec:
    """One safe-output job: download the agent output, then run the kind's script."""

    job_env: dict[str, str] = {"GH_AW_AGENT_OUTPUT": AGENT_OUTPUT_DIR + AGENT_OUTPUT_ARTIFACT}
    job_env.update(env)
    job_env.update(metadata_env(ctx.spec))
    job_env.update(staged_env(ctx, target_repo=target_repo))
    job_env.update(ctx.extra_env)

    condition = expressions.safe_output_condition(ctx.main_job, type_tag)
    if extra_condition:
        condition = expressions.and_(condition, extra_condition)

    steps: list[Step] = [
        {
            "name": "Download agent output artifact",
            "continue-on-error": True,
            "uses": "actions/download-artifact@v4",
            "with": {"name": AGENT_OUTPUT_ARTIFACT, "path": AGENT_OUTPUT_DIR},
        },
    ]
    steps.extend(setup_steps(ctx.config))
    steps.extend(dict(step) for step in pre_steps)
    steps.append(
        {
            "name": step_name,
            "id": step_id,
            "uses": "actions/github-script@v8",
            "with": {
                "github-token": token or ctx.github_token or DEFAULT_TOKEN_EXPRESSION,
                "script": script_for(script_name or step_id),
            },
        }
    )
    steps.extend(dict(step) for step in post_steps)

    logger.debug("Built safe-output job %s (permissions=%s)", job_name, permissions.render())
    return JobSpec(
        name=job_name,
        needs=(ctx.main_job,),
        permissions=permissions,
        condition=condition,
        env=job_env,
        steps=tuple(steps),
        outputs=dict(outputs or {}),
        runs_on=ctx.runs_on or ctx.config.runs_on,
        timeout_minutes=15,
    )


def step_outputs(step_id: str, keys: Iterable[str]) -> dict[str, str]:
    return {key: expressions.step_output(step_id, key) for key in keys}
