"""assign-to-agent: hand an issue or pull request over to a coding agent."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from jobkit.job_types import JobSpec
from jobkit.kind_registry import JobKindRef
from jobkit.permissions import PermissionSet

from agentic_workflows.safe_outputs.common import (
    SafeOutputContext,
    TargetConfig,
    build_safe_output_job,
    max_env,
    output_namespace,
    parse_max,
    parse_optional_str,
    parse_str_list,
    parse_target,
    step_outputs,
)

logger = logging.getLogger(__name__)

CONFIG_KEY = "assign-to-agent"
JOB_NAME = "assign_to_agent"
ENV_PREFIX = "GH_AW_AGENT"
DEFAULT_AGENT = "copilot"
DEFAULT_MAX = 1


@dataclass(frozen=True)
class AssignToAgentConfig:
    default_agent: str = DEFAULT_AGENT
    max: int | str | None = DEFAULT_MAX
    github_token: str | None = None
    target: TargetConfig = field(default_factory=TargetConfig)
    allowed: tuple[str, ...] = ()


def parse_assign_to_agent_config(raw: Mapping[str, Any]) -> AssignToAgentConfig | None:
    ns = output_namespace(raw, CONFIG_KEY)
    if ns is None:
        return None

    target = parse_target(ns)
    if target is None:
        return None

    config = AssignToAgentConfig(
        default_agent=parse_optional_str(ns, "name") or DEFAULT_AGENT,
        max=parse_max(ns, default=DEFAULT_MAX),
        github_token=parse_optional_str(ns, "github-token"),
        target=target,
        allowed=parse_str_list(ns, "allowed"),
    )
    ns.log_unconsumed(logger)
    logger.debug("Parsed assign-to-agent configuration: agent=%s, max=%s", config.default_agent, config.max)
    return config


def build_assign_to_agent_job(ctx: SafeOutputContext, config: AssignToAgentConfig) -> JobSpec:
    env: dict[str, str] = {f"{ENV_PREFIX}_DEFAULT": config.default_agent}
    env.update(max_env(ENV_PREFIX, config.max))
    env.update(config.target.env(ENV_PREFIX))
    if config.allowed:
        env[f"{ENV_PREFIX}_ALLOWED"] = ",".join(config.allowed)

    # Assigning an agent starts a run on the agent's side, hence actions: write.
    permissions = PermissionSet.from_mapping(
        {
            "actions": "write",
            "contents": "write",
            "issues": "write",
            "pull-requests": "write",
        }
    )
    return build_safe_output_job(
        ctx,
        job_name=JOB_NAME,
        step_name="Assign to Agent",
        step_id=JOB_NAME,
        type_tag=JOB_NAME,
        env=env,
        permissions=permissions,
        outputs=step_outputs(JOB_NAME, ("assigned_agents",)),
        token=config.github_token,
        target_repo=config.target.target_repo,
    )


__all_kinds__ = [
    JobKindRef(
        id=CONFIG_KEY,
        job_name=JOB_NAME,
        parse=lambda raw, *, key: parse_assign_to_agent_config(raw),
        build_job=build_assign_to_agent_job,
        doc="Assign an issue or pull request to a coding agent (default: copilot).",
        source=__name__,
    )
]
