"""Close/update operations over issues, pull requests and discussions.

One immutable table of `EntityOperationDefinition` rows drives a single generic
parse/build pair. Per-entity differences (the discussion category filter, which
fields an update may touch) are optional sub-configs that do nothing at their
zero value, so the generic path never branches on the entity kind.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from jobkit.config_namespace import ConfigNamespace
from jobkit.job_types import JobSpec
from jobkit.kind_registry import JobKindRef
from jobkit.permissions import PermissionSet, contents_read_with

from agentic_workflows.safe_outputs.common import (
    FilterConfig,
    SafeOutputContext,
    TargetConfig,
    build_safe_output_job,
    max_env,
    output_namespace,
    parse_filters,
    parse_max,
    parse_optional_str,
    parse_str_list,
    parse_target,
    step_outputs,
)
from agentic_workflows.workflow import expressions

logger = logging.getLogger(__name__)

EntityKind = Literal["issue", "pull_request", "discussion"]
EntityOperation = Literal["close", "update"]
FieldParsingMode = Literal["key", "bool"]

UPDATE_FIELDS: tuple[str, ...] = ("title", "body", "status", "labels")


def parse_field_toggle(ns: ConfigNamespace, name: str, mode: FieldParsingMode) -> bool | None:
    """Parse one update-field toggle.

    ``key`` mode: the key's presence enables the field, whatever its value.
    ``bool`` mode: ``true``/``false`` as written, null enables, any other value is ignored.
    """

    if not ns.has(name):
        return None
    raw = ns.get_raw(name)
    if mode == "key":
        return True
    if raw is None:
        return True
    if isinstance(raw, bool):
        return raw
    logger.warning("Ignoring non-boolean %s.%s (type=%s)", ns.path, name, type(raw).__name__)
    return None


@dataclass(frozen=True)
class DiscussionFilterConfig:
    required_category: str | None = None

    def env(self, prefix: str) -> dict[str, str]:
        if not self.required_category:
            return {}
        return {f"{prefix}_REQUIRED_CATEGORY": self.required_category}


@dataclass(frozen=True)
class UpdateFieldsConfig:
    title: bool | None = None
    body: bool | None = None
    status: bool | None = None
    labels: bool | None = None
    allowed_labels: tuple[str, ...] = ()

    def env(self, prefix: str) -> dict[str, str]:
        out: dict[str, str] = {}
        for name in UPDATE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                out[f"{prefix}_{name.upper()}"] = "true" if value else "false"
        if self.allowed_labels:
            out[f"{prefix}_ALLOWED_LABELS"] = ",".join(self.allowed_labels)
        return out


@dataclass(frozen=True)
class EntityOperationDefinition:
    entity: EntityKind
    operation: EntityOperation
    config_key: str
    env_prefix: str
    job_name: str
    step_name: str
    step_id: str
    output_number_key: str
    output_url_key: str
    event_number_paths: tuple[str, ...]
    permissions_func: Callable[[], PermissionSet]
    default_max: int = 1
    update_fields: tuple[str, ...] = ()
    update_field_mode: FieldParsingMode = "key"
    category_filter: bool = False
    doc: str | None = None

    @property
    def type_tag(self) -> str:
        return self.config_key.replace("-", "_")


@dataclass(frozen=True)
class EntityOperationConfig:
    max: int | str | None = 1
    github_token: str | None = None
    target: TargetConfig = field(default_factory=TargetConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    discussion: DiscussionFilterConfig = field(default_factory=DiscussionFilterConfig)
    fields: UpdateFieldsConfig = field(default_factory=UpdateFieldsConfig)


ENTITY_OPERATIONS: tuple[EntityOperationDefinition, ...] = (
    EntityOperationDefinition(
        entity="issue",
        operation="close",
        config_key="close-issue",
        env_prefix="GH_AW_CLOSE_ISSUE",
        job_name="close_issue",
        step_name="Close Issue",
        step_id="close_issue",
        output_number_key="issue_number",
        output_url_key="issue_url",
        event_number_paths=("github.event.issue.number", "github.event.comment.issue.number"),
        permissions_func=lambda: contents_read_with(issues="write"),
        doc="Close an issue with an optional comment.",
    ),
    EntityOperationDefinition(
        entity="pull_request",
        operation="close",
        config_key="close-pull-request",
        env_prefix="GH_AW_CLOSE_PR",
        job_name="close_pull_request",
        step_name="Close Pull Request",
        step_id="close_pull_request",
        output_number_key="pull_request_number",
        output_url_key="pull_request_url",
        event_number_paths=(
            "github.event.pull_request.number",
            "github.event.comment.pull_request.number",
        ),
        permissions_func=lambda: contents_read_with(pull_requests="write"),
        doc="Close a pull request without merging.",
    ),
    EntityOperationDefinition(
        entity="discussion",
        operation="close",
        config_key="close-discussion",
        env_prefix="GH_AW_CLOSE_DISCUSSION",
        job_name="close_discussion",
        step_name="Close Discussion",
        step_id="close_discussion",
        output_number_key="discussion_number",
        output_url_key="discussion_url",
        event_number_paths=(
            "github.event.discussion.number",
            "github.event.comment.discussion.number",
        ),
        permissions_func=lambda: contents_read_with(discussions="write"),
        category_filter=True,
        doc="Close a discussion, optionally restricted to one category.",
    ),
    EntityOperationDefinition(
        entity="issue",
        operation="update",
        config_key="update-issue",
        env_prefix="GH_AW_UPDATE_ISSUE",
        job_name="update_issue",
        step_name="Update Issue",
        step_id="update_issue",
        output_number_key="issue_number",
        output_url_key="issue_url",
        event_number_paths=("github.event.issue.number", "github.event.comment.issue.number"),
        permissions_func=lambda: contents_read_with(issues="write"),
        update_fields=("status", "title", "body", "labels"),
        doc="Update the title, body, status or labels of an issue.",
    ),
    EntityOperationDefinition(
        entity="pull_request",
        operation="update",
        config_key="update-pull-request",
        env_prefix="GH_AW_UPDATE_PR",
        job_name="update_pull_request",
        step_name="Update Pull Request",
        step_id="update_pull_request",
        output_number_key="pull_request_number",
        output_url_key="pull_request_url",
        event_number_paths=(
            "github.event.pull_request.number",
            "github.event.comment.pull_request.number",
        ),
        permissions_func=lambda: contents_read_with(pull_requests="write"),
        update_fields=("title", "body"),
        update_field_mode="bool",
        doc="Update the title or body of a pull request.",
    ),
    EntityOperationDefinition(
        entity="discussion",
        operation="update",
        config_key="update-discussion",
        env_prefix="GH_AW_UPDATE_DISCUSSION",
        job_name="update_discussion",
        step_name="Update Discussion",
        step_id="update_discussion",
        output_number_key="discussion_number",
        output_url_key="discussion_url",
        event_number_paths=(
            "github.event.discussion.number",
            "github.event.comment.discussion.number",
        ),
        permissions_func=lambda: contents_read_with(discussions="write"),
        update_fields=("title", "body", "labels"),
        category_filter=True,
        doc="Update the title, body or labels of a discussion.",
    ),
)


def _parse_update_fields(ns: ConfigNamespace, definition: EntityOperationDefinition) -> UpdateFieldsConfig:
    if not definition.update_fields:
        return UpdateFieldsConfig()
    toggles = {
        name: parse_field_toggle(ns, name, definition.update_field_mode)
        for name in definition.update_fields
    }
    allowed_labels: tuple[str, ...] = ()
    if "labels" in definition.update_fields:
        allowed_labels = parse_str_list(ns, "allowed-labels")
        if allowed_labels and toggles.get("labels") is None:
            toggles["labels"] = True
    return UpdateFieldsConfig(allowed_labels=allowed_labels, **toggles)


def parse_entity_config(
    raw: Mapping[str, Any], definition: EntityOperationDefinition
) -> EntityOperationConfig | None:
    """Parse one entity operation; ``None`` when absent or the target-repo is a wildcard."""

    ns = output_namespace(raw, definition.config_key)
    if ns is None:
        return None

    target = parse_target(ns)
    if target is None:
        return None

    discussion = DiscussionFilterConfig()
    if definition.category_filter:
        discussion = DiscussionFilterConfig(required_category=parse_optional_str(ns, "required-category"))

    config = EntityOperationConfig(
        max=parse_max(ns, default=definition.default_max),
        github_token=parse_optional_str(ns, "github-token"),
        target=target,
        filters=parse_filters(ns),
        discussion=discussion,
        fields=_parse_update_fields(ns, definition),
    )
    ns.log_unconsumed(logger)
    logger.debug(
        "Parsed %s configuration: max=%s, target=%s",
        definition.config_key,
        config.max,
        config.target.target,
    )
    return config


def build_entity_job(
    ctx: SafeOutputContext,
    definition: EntityOperationDefinition,
    config: EntityOperationConfig,
) -> JobSpec:
    prefix = definition.env_prefix
    env: dict[str, str] = {}
    env.update(max_env(prefix, config.max))
    env.update(config.target.env(prefix))
    env.update(config.filters.env(prefix))
    env.update(config.discussion.env(prefix))
    env.update(config.fields.env(prefix))

    # Without an explicit target the operation acts on the triggering entity.
    extra_condition = None
    if not config.target.target:
        extra_condition = expressions.any_present(definition.event_number_paths)

    outputs = step_outputs(definition.step_id, (definition.output_number_key, definition.output_url_key))
    return build_safe_output_job(
        ctx,
        job_name=definition.job_name,
        step_name=definition.step_name,
        step_id=definition.step_id,
        type_tag=definition.type_tag,
        env=env,
        permissions=definition.permissions_func(),
        outputs=outputs,
        token=config.github_token,
        target_repo=config.target.target_repo,
        extra_condition=extra_condition,
    )


def entity_kind_ref(definition: EntityOperationDefinition) -> JobKindRef:
    return JobKindRef(
        id=definition.config_key,
        job_name=definition.job_name,
        parse=lambda raw, *, key: parse_entity_config(raw, definition),
        build_job=lambda ctx, config: build_entity_job(ctx, definition, config),
        doc=definition.doc,
        source=__name__,
        tags=("entity", definition.operation, definition.entity),
    )


__all_kinds__ = [entity_kind_ref(definition) for definition in ENTITY_OPERATIONS]
