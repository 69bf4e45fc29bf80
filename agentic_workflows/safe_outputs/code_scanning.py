"""Code scanning safe outputs: SARIF alert creation and autofix suggestions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from jobkit.job_types import JobSpec, Step
from jobkit.kind_registry import JobKindRef
from jobkit.permissions import PermissionSet

from agentic_workflows.safe_outputs.common import (
    SafeOutputContext,
    build_safe_output_job,
    max_env,
    output_namespace,
    parse_max,
    parse_optional_str,
    step_outputs,
)
from agentic_workflows.workflow import expressions

logger = logging.getLogger(__name__)

ALERT_KEY = "create-code-scanning-alert"
ALERT_JOB = "create_code_scanning_alert"
AUTOFIX_KEY = "autofix-code-scanning-alert"
AUTOFIX_JOB = "autofix_code_scanning_alert"
SARIF_ARTIFACT = "code-scanning-alert.sarif"


def code_scanning_permissions() -> PermissionSet:
    return PermissionSet.from_mapping(
        {"actions": "read", "contents": "read", "security-events": "write"}
    )


@dataclass(frozen=True)
class CodeScanningAlertConfig:
    max: int | str | None = None
    github_token: str | None = None
    driver: str | None = None


@dataclass(frozen=True)
class AutofixCodeScanningConfig:
    max: int | str | None = 10
    github_token: str | None = None


def parse_code_scanning_alert_config(raw: Mapping[str, Any]) -> CodeScanningAlertConfig | None:
    ns = output_namespace(raw, ALERT_KEY)
    if ns is None:
        return None
    config = CodeScanningAlertConfig(
        max=parse_max(ns, default=0),
        github_token=parse_optional_str(ns, "github-token"),
        driver=parse_optional_str(ns, "driver"),
    )
    ns.log_unconsumed(logger)
    return config


def parse_autofix_config(raw: Mapping[str, Any]) -> AutofixCodeScanningConfig | None:
    ns = output_namespace(raw, AUTOFIX_KEY)
    if ns is None:
        return None
    config = AutofixCodeScanningConfig(
        max=parse_max(ns, default=10),
        github_token=parse_optional_str(ns, "github-token"),
    )
    ns.log_unconsumed(logger)
    return config


def _sarif_upload_steps(token: str) -> list[Step]:
    sarif_file = expressions.step_output(ALERT_JOB, "sarif_file")
    condition = expressions.unwrap(sarif_file)
    return [
        {
            "name": "Upload SARIF artifact",
            "if": condition,
            "uses": "actions/upload-artifact@v4",
            "with": {"name": SARIF_ARTIFACT, "path": sarif_file},
        },
        {
            "name": "Upload SARIF to GitHub Security",
            "if": condition,
            "uses": "github/codeql-action/upload-sarif@v3",
            "with": {"token": token, "sarif_file": sarif_file, "wait-for-processing": True},
        },
    ]


def build_code_scanning_alert_job(ctx: SafeOutputContext, config: CodeScanningAlertConfig) -> JobSpec:
    spec = ctx.spec
    driver = config.driver or spec.frontmatter_name or spec.name
    env: dict[str, str] = {}
    env.update(max_env("GH_AW_SECURITY_REPORT", config.max))
    env["GH_AW_SECURITY_REPORT_DRIVER"] = driver
    env["GH_AW_WORKFLOW_FILENAME"] = spec.workflow_id

    token = config.github_token or ctx.github_token or "${{ github.token }}"
    return build_safe_output_job(
        ctx,
        job_name=ALERT_JOB,
        step_name="Create Code Scanning Alert",
        step_id=ALERT_JOB,
        type_tag=ALERT_JOB,
        env=env,
        permissions=code_scanning_permissions(),
        outputs=step_outputs(
            ALERT_JOB, ("sarif_file", "findings_count", "artifact_uploaded", "codeql_uploaded")
        ),
        token=config.github_token,
        post_steps=_sarif_upload_steps(token),
    )


def build_autofix_job(ctx: SafeOutputContext, config: AutofixCodeScanningConfig) -> JobSpec:
    return build_safe_output_job(
        ctx,
        job_name=AUTOFIX_JOB,
        step_name="Create Code Scanning Autofix",
        step_id=AUTOFIX_JOB,
        type_tag=AUTOFIX_JOB,
        env=max_env("GH_AW_AUTOFIX_CODE_SCANNING_ALERT", config.max),
        permissions=code_scanning_permissions(),
        outputs=step_outputs(AUTOFIX_JOB, ("alert_id", "autofix_created")),
        token=config.github_token,
    )


__all_kinds__ = [
    JobKindRef(
        id=ALERT_KEY,
        job_name=ALERT_JOB,
        parse=lambda raw, *, key: parse_code_scanning_alert_config(raw),
        build_job=build_code_scanning_alert_job,
        doc="Record security findings as SARIF and upload them to code scanning.",
        source=__name__,
        tags=("security",),
    ),
    JobKindRef(
        id=AUTOFIX_KEY,
        job_name=AUTOFIX_JOB,
        parse=lambda raw, *, key: parse_autofix_config(raw),
        build_job=build_autofix_job,
        doc="Attach suggested fixes to existing code scanning alerts.",
        source=__name__,
        tags=("security",),
    ),
]
