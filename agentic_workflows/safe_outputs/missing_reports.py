"""missing-tool / missing-data: the agent reports something it needed but lacked.

Both kinds share one shape. ``false`` disables the kind, a bare key (null)
enables it with issue creation on, and ``issues: write`` is granted only when the
job may open issues.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from jobkit.job_types import JobSpec
from jobkit.kind_registry import JobKindRef
from jobkit.permissions import PermissionsBuilder

from agentic_workflows.safe_outputs.common import (
    SafeOutputContext,
    build_safe_output_job,
    json_list_env,
    max_env,
    output_namespace,
    parse_max,
    parse_optional_bool,
    parse_optional_str,
    parse_str_list,
    step_outputs,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MissingReportKind:
    config_key: str
    env_prefix: str
    job_name: str
    step_name: str
    default_title_prefix: str
    doc: str

    @property
    def type_tag(self) -> str:
        return self.config_key.replace("-", "_")


@dataclass(frozen=True)
class MissingReportConfig:
    max: int | str | None = None
    github_token: str | None = None
    create_issue: bool = True
    title_prefix: str = ""
    labels: tuple[str, ...] = ()


MISSING_TOOL = MissingReportKind(
    config_key="missing-tool",
    env_prefix="GH_AW_MISSING_TOOL",
    job_name="missing_tool",
    step_name="Record Missing Tool",
    default_title_prefix="[missing tool]",
    doc="Report tools or permissions the agent needed but did not have.",
)
MISSING_DATA = MissingReportKind(
    config_key="missing-data",
    env_prefix="GH_AW_MISSING_DATA",
    job_name="missing_data",
    step_name="Record Missing Data",
    default_title_prefix="[missing data]",
    doc="Report data the agent needed but could not find.",
)


def parse_missing_report_config(
    raw: Mapping[str, Any], kind: MissingReportKind
) -> MissingReportConfig | None:
    ns = output_namespace(raw, kind.config_key)
    if ns is None:
        return None

    title_prefix = parse_optional_str(ns, "title-prefix")
    config = MissingReportConfig(
        max=parse_max(ns, default=0),
        github_token=parse_optional_str(ns, "github-token"),
        create_issue=bool(parse_optional_bool(ns, "create-issue", default=True)),
        title_prefix=title_prefix if title_prefix is not None else kind.default_title_prefix,
        labels=parse_str_list(ns, "labels"),
    )
    ns.log_unconsumed(logger)
    logger.debug(
        "Parsed %s configuration: create_issue=%s, title_prefix=%s",
        kind.config_key,
        config.create_issue,
        config.title_prefix,
    )
    return config


def build_missing_report_job(
    ctx: SafeOutputContext, kind: MissingReportKind, config: MissingReportConfig
) -> JobSpec:
    prefix = kind.env_prefix
    env: dict[str, str] = {}
    env.update(max_env(prefix, config.max))
    if config.create_issue:
        env[f"{prefix}_CREATE_ISSUE"] = "true"
    if config.title_prefix:
        env[f"{prefix}_TITLE_PREFIX"] = config.title_prefix
    if config.labels:
        env.update(json_list_env(f"{prefix}_LABELS", config.labels))

    permissions = PermissionsBuilder().set("contents", "read")
    if config.create_issue:
        permissions.set("issues", "write")

    return build_safe_output_job(
        ctx,
        job_name=kind.job_name,
        step_name=kind.step_name,
        step_id=kind.job_name,
        type_tag=kind.type_tag,
        env=env,
        permissions=permissions.build(),
        outputs=step_outputs(kind.job_name, ("tools_reported", "total_count")),
        token=config.github_token,
    )


def missing_report_ref(kind: MissingReportKind) -> JobKindRef:
    return JobKindRef(
        id=kind.config_key,
        job_name=kind.job_name,
        parse=lambda raw, *, key: parse_missing_report_config(raw, kind),
        build_job=lambda ctx, config: build_missing_report_job(ctx, kind, config),
        doc=kind.doc,
        source=__name__,
        tags=("report",),
    )


__all_kinds__ = [missing_report_ref(MISSING_TOOL), missing_report_ref(MISSING_DATA)]
