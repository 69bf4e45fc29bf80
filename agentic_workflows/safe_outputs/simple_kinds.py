"""Declarative table for safe-output kinds whose job is fully described by data.

Each row lists the kind's env prefix, job/step naming, outputs, permission set,
default ``max`` and any extra fields forwarded to the job env.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from jobkit.job_types import JobSpec
from jobkit.kind_registry import JobKindRef
from jobkit.permissions import PermissionSet, contents_read, contents_read_with

from agentic_workflows.safe_outputs.common import (
    SafeOutputContext,
    TargetConfig,
    build_safe_output_job,
    json_list_env,
    max_env,
    output_namespace,
    parse_max,
    parse_optional_bool,
    parse_optional_str,
    parse_str_list,
    parse_target,
    step_outputs,
)

logger = logging.getLogger(__name__)

FieldKind = Literal["str", "list", "json_list", "bool"]


@dataclass(frozen=True)
class ExtraField:
    key: str
    kind: FieldKind
    env_suffix: str

    def env_name(self, prefix: str) -> str:
        return f"{prefix}_{self.env_suffix}"


@dataclass(frozen=True)
class SimpleKindDefinition:
    config_key: str
    env_prefix: str
    job_name: str
    step_name: str
    outputs: tuple[str, ...]
    permissions_func: Callable[[], PermissionSet]
    default_max: int = 1
    fixed_limit: int | None = None
    supports_target: bool = False
    extra_fields: tuple[ExtraField, ...] = ()
    doc: str | None = None

    @property
    def step_id(self) -> str:
        return self.job_name

    @property
    def type_tag(self) -> str:
        return self.config_key.replace("-", "_")


@dataclass(frozen=True)
class SimpleKindConfig:
    max: int | str | None
    github_token: str | None = None
    target: TargetConfig = field(default_factory=TargetConfig)
    extras: tuple[tuple[str, Any], ...] = ()


SIMPLE_KINDS: tuple[SimpleKindDefinition, ...] = (
    SimpleKindDefinition(
        config_key="create-issue",
        env_prefix="GH_AW_ISSUE",
        job_name="create_issue",
        step_name="Create Output Issue",
        outputs=("issue_number", "issue_url", "temporary_id_map"),
        permissions_func=lambda: contents_read_with(issues="write"),
        supports_target=True,
        extra_fields=(
            ExtraField("title-prefix", "str", "TITLE_PREFIX"),
            ExtraField("labels", "list", "LABELS"),
            ExtraField("assignees", "list", "ASSIGNEES"),
        ),
        doc="Open a new issue.",
    ),
    SimpleKindDefinition(
        config_key="create-discussion",
        env_prefix="GH_AW_DISCUSSION",
        job_name="create_discussion",
        step_name="Create Output Discussion",
        outputs=("discussion_number", "discussion_url"),
        permissions_func=lambda: contents_read_with(discussions="write"),
        supports_target=True,
        extra_fields=(
            ExtraField("title-prefix", "str", "TITLE_PREFIX"),
            ExtraField("category", "str", "CATEGORY"),
            ExtraField("labels", "list", "LABELS"),
        ),
        doc="Open a new discussion.",
    ),
    SimpleKindDefinition(
        config_key="add-comment",
        env_prefix="GH_AW_COMMENT",
        job_name="add_comment",
        step_name="Add Issue Comment",
        outputs=("comment_id", "comment_url"),
        permissions_func=lambda: contents_read_with(
            issues="write", pull_requests="write", discussions="write"
        ),
        supports_target=True,
        extra_fields=(
            ExtraField("hide-older-comments", "bool", "HIDE_OLDER_COMMENTS"),
            ExtraField("discussion", "bool", "DISCUSSION"),
        ),
        doc="Comment on an issue, pull request or discussion.",
    ),
    SimpleKindDefinition(
        config_key="create-pull-request",
        env_prefix="GH_AW_PR",
        job_name="create_pull_request",
        step_name="Create Pull Request",
        outputs=("pull_request_number", "pull_request_url", "branch_name"),
        permissions_func=lambda: PermissionSet.from_mapping(
            {"contents": "write", "issues": "write", "pull-requests": "write"}
        ),
        supports_target=True,
        extra_fields=(
            ExtraField("title-prefix", "str", "TITLE_PREFIX"),
            ExtraField("labels", "list", "LABELS"),
            ExtraField("draft", "bool", "DRAFT"),
            ExtraField("if-no-changes", "str", "IF_NO_CHANGES"),
            ExtraField("base-branch", "str", "BASE_BRANCH"),
        ),
        doc="Push the agent's patch to a branch and open a pull request.",
    ),
    SimpleKindDefinition(
        config_key="create-pull-request-review-comment",
        env_prefix="GH_AW_PR_REVIEW_COMMENT",
        job_name="create_pr_review_comment",
        step_name="Create PR Review Comment",
        outputs=("review_comment_id", "review_comment_url"),
        permissions_func=lambda: contents_read_with(pull_requests="write"),
        default_max=10,
        supports_target=True,
        extra_fields=(ExtraField("side", "str", "SIDE"),),
        doc="Leave line comments on a pull request diff.",
    ),
    SimpleKindDefinition(
        config_key="submit-pull-request-review",
        env_prefix="GH_AW_SUBMIT_PR_REVIEW",
        job_name="submit_pull_request_review",
        step_name="Submit Pull Request Review",
        outputs=("review_id", "review_url"),
        permissions_func=lambda: contents_read_with(pull_requests="write"),
        fixed_limit=1,
        supports_target=True,
        doc="Submit one review (approve, request changes or comment) per run.",
    ),
    SimpleKindDefinition(
        config_key="add-labels",
        env_prefix="GH_AW_LABELS",
        job_name="add_labels",
        step_name="Add Labels",
        outputs=("labels_added",),
        permissions_func=lambda: contents_read_with(issues="write", pull_requests="write"),
        default_max=3,
        supports_target=True,
        extra_fields=(ExtraField("allowed", "list", "ALLOWED"),),
        doc="Add labels to an issue or pull request.",
    ),
    SimpleKindDefinition(
        config_key="remove-labels",
        env_prefix="GH_AW_REMOVE_LABELS",
        job_name="remove_labels",
        step_name="Remove Labels",
        outputs=("labels_removed",),
        permissions_func=lambda: contents_read_with(issues="write", pull_requests="write"),
        default_max=3,
        supports_target=True,
        extra_fields=(ExtraField("allowed", "list", "ALLOWED"),),
        doc="Remove labels from an issue or pull request.",
    ),
    SimpleKindDefinition(
        config_key="add-reviewer",
        env_prefix="GH_AW_REVIEWERS",
        job_name="add_reviewer",
        step_name="Add Reviewers",
        outputs=("reviewers_added",),
        permissions_func=lambda: contents_read_with(pull_requests="write"),
        default_max=3,
        supports_target=True,
        extra_fields=(ExtraField("reviewers", "list", "ALLOWED"),),
        doc="Request reviewers on a pull request.",
    ),
    SimpleKindDefinition(
        config_key="hide-comment",
        env_prefix="GH_AW_HIDE_COMMENT",
        job_name="hide_comment",
        step_name="Hide Comment",
        outputs=("comment_id", "is_hidden"),
        permissions_func=lambda: contents_read_with(
            issues="write", pull_requests="write", discussions="write"
        ),
        default_max=5,
        supports_target=True,
        extra_fields=(
            ExtraField("allowed-reasons", "json_list", "ALLOWED_REASONS"),
            ExtraField("discussion", "bool", "DISCUSSION"),
        ),
        doc="Minimize (hide) comments.",
    ),
    SimpleKindDefinition(
        config_key="link-sub-issue",
        env_prefix="GH_AW_LINK_SUB_ISSUE",
        job_name="link_sub_issue",
        step_name="Link Sub-Issue",
        outputs=("linked_issues",),
        permissions_func=lambda: contents_read_with(issues="write"),
        default_max=5,
        supports_target=True,
        extra_fields=(
            ExtraField("parent-required-labels", "list", "PARENT_REQUIRED_LABELS"),
            ExtraField("parent-title-prefix", "str", "PARENT_TITLE_PREFIX"),
            ExtraField("sub-required-labels", "list", "SUB_REQUIRED_LABELS"),
            ExtraField("sub-title-prefix", "str", "SUB_TITLE_PREFIX"),
        ),
        doc="Attach an issue as a sub-issue of another.",
    ),
    SimpleKindDefinition(
        config_key="noop",
        env_prefix="GH_AW_NOOP",
        job_name="noop",
        step_name="Process No-Op Messages",
        outputs=("noop_message",),
        permissions_func=contents_read,
        doc="Record that the agent intentionally did nothing.",
    ),
)


def _parse_extra(ns, extra: ExtraField) -> Any:
    if extra.kind == "bool":
        return parse_optional_bool(ns, extra.key)
    if extra.kind in ("list", "json_list"):
        return parse_str_list(ns, extra.key) or None
    return parse_optional_str(ns, extra.key)


def parse_simple_config(
    raw: Mapping[str, Any], definition: SimpleKindDefinition
) -> SimpleKindConfig | None:
    ns = output_namespace(raw, definition.config_key)
    if ns is None:
        return None

    target = TargetConfig()
    if definition.supports_target:
        parsed = parse_target(ns)
        if parsed is None:
            return None
        target = parsed

    extras = []
    for extra in definition.extra_fields:
        value = _parse_extra(ns, extra)
        if value is not None:
            extras.append((extra.key, value))

    config = SimpleKindConfig(
        max=parse_max(ns, default=definition.default_max, fixed_limit=definition.fixed_limit),
        github_token=parse_optional_str(ns, "github-token"),
        target=target,
        extras=tuple(extras),
    )
    ns.log_unconsumed(logger)
    logger.debug("Parsed %s configuration: max=%s", definition.config_key, config.max)
    return config


def _extra_env(definition: SimpleKindDefinition, config: SimpleKindConfig) -> dict[str, str]:
    by_key = {extra.key: extra for extra in definition.extra_fields}
    out: dict[str, str] = {}
    for key, value in config.extras:
        extra = by_key[key]
        name = extra.env_name(definition.env_prefix)
        if extra.kind == "bool":
            out[name] = "true" if value else "false"
        elif extra.kind == "json_list":
            out.update(json_list_env(name, value))
        elif extra.kind == "list":
            out[name] = ",".join(value)
        else:
            out[name] = str(value)
    return out


def build_simple_job(
    ctx: SafeOutputContext,
    definition: SimpleKindDefinition,
    config: SimpleKindConfig,
) -> JobSpec:
    prefix = definition.env_prefix
    env: dict[str, str] = {}
    env.update(max_env(prefix, config.max))
    env.update(config.target.env(prefix))
    env.update(_extra_env(definition, config))
    return build_safe_output_job(
        ctx,
        job_name=definition.job_name,
        step_name=definition.step_name,
        step_id=definition.step_id,
        type_tag=definition.type_tag,
        env=env,
        permissions=definition.permissions_func(),
        outputs=step_outputs(definition.step_id, definition.outputs),
        token=config.github_token,
        target_repo=config.target.target_repo,
    )


def simple_kind_ref(definition: SimpleKindDefinition) -> JobKindRef:
    return JobKindRef(
        id=definition.config_key,
        job_name=definition.job_name,
        parse=lambda raw, *, key: parse_simple_config(raw, definition),
        build_job=lambda ctx, config: build_simple_job(ctx, definition, config),
        doc=definition.doc,
        source=__name__,
        tags=("fixed-limit",) if definition.fixed_limit is not None else (),
    )


__all_kinds__ = [simple_kind_ref(definition) for definition in SIMPLE_KINDS]
