import json
import logging

import pytest

from agentic_workflows.safe_outputs.assign_to_agent import (
    build_assign_to_agent_job,
    parse_assign_to_agent_config,
)
from agentic_workflows.safe_outputs.code_scanning import (
    build_autofix_job,
    build_code_scanning_alert_job,
    parse_autofix_config,
    parse_code_scanning_alert_config,
)
from agentic_workflows.safe_outputs.common import SafeOutputContext
from agentic_workflows.safe_outputs.dispatch_workflow import parse_dispatch_workflow_config
from agentic_workflows.safe_outputs.missing_reports import (
    MISSING_DATA,
    MISSING_TOOL,
    build_missing_report_job,
    parse_missing_report_config,
)
from agentic_workflows.safe_outputs.simple_kinds import (
    SIMPLE_KINDS,
    build_simple_job,
    parse_simple_config,
)
from agentic_workflows.workflow.config import CompilerConfig
from agentic_workflows.workflow.spec import WorkflowSpec, parse_triggers


def _kind(key: str):
    return next(d for d in SIMPLE_KINDS if d.config_key == key)


def _ctx(**kwargs) -> SafeOutputContext:
    spec = WorkflowSpec(
        workflow_id="security-scan",
        name="Security Scan",
        frontmatter_name="Nightly Security Scan",
        triggers=parse_triggers("workflow_dispatch"),
    )
    return SafeOutputContext(spec=spec, **kwargs)


# ---- max handling -------------------------------------------------------------


def test_dispatch_workflow_defaults_to_max_one():
    config = parse_dispatch_workflow_config({"dispatch-workflow": {"workflows": ["deploy"]}})
    assert config.max == 1

    list_form = parse_dispatch_workflow_config({"dispatch-workflow": ["deploy", "notify"]})
    assert list_form.max == 1
    assert list_form.workflows == ("deploy", "notify")


def test_dispatch_workflow_explicit_max_overrides_and_is_capped():
    config = parse_dispatch_workflow_config({"dispatch-workflow": {"workflows": ["a"], "max": 5}})
    assert config.max == 5

    capped = parse_dispatch_workflow_config({"dispatch-workflow": {"workflows": ["a"], "max": 500}})
    assert capped.max == 50


def test_assign_to_agent_defaults_to_max_one():
    assert parse_assign_to_agent_config({"assign-to-agent": None}).max == 1
    assert parse_assign_to_agent_config({"assign-to-agent": {"max": 5}}).max == 5


def test_fixed_limit_kind_is_clamped_silently(caplog):
    kind = _kind("submit-pull-request-review")
    with caplog.at_level(logging.WARNING):
        config = parse_simple_config({"submit-pull-request-review": {"max": 5}}, kind)
    assert config.max == 1
    assert caplog.text == ""

    job = build_simple_job(_ctx(), kind, config)
    assert job.env["GH_AW_SUBMIT_PR_REVIEW_MAX"] == "1"


def test_explicit_zero_max_uses_default():
    config = parse_simple_config({"add-labels": {"max": 0}}, _kind("add-labels"))
    assert config.max == 3


def test_max_accepts_expression():
    expression = "${{ inputs.max_labels }}"
    config = parse_simple_config({"add-labels": {"max": expression}}, _kind("add-labels"))
    assert config.max == expression
    job = build_simple_job(_ctx(), _kind("add-labels"), config)
    assert job.env["GH_AW_LABELS_MAX"] == expression


def test_invalid_max_falls_back_to_default(caplog):
    with caplog.at_level(logging.WARNING):
        config = parse_simple_config({"create-issue": {"max": "lots"}}, _kind("create-issue"))
    assert config.max == 1
    assert "safe-outputs.create-issue" in caplog.text


# ---- simple kinds ----------------------------------------------------------------


def test_create_issue_env_and_permissions():
    kind = _kind("create-issue")
    config = parse_simple_config(
        {"create-issue": {"title-prefix": "[bot] ", "labels": ["automation", "triage"]}}, kind
    )
    job = build_simple_job(_ctx(), kind, config)

    assert job.name == "create_issue"
    assert job.permissions.render() == "contents: read\nissues: write"
    assert job.env["GH_AW_ISSUE_TITLE_PREFIX"] == "[bot]"
    assert job.env["GH_AW_ISSUE_LABELS"] == "automation,triage"
    assert job.env["GH_AW_ISSUE_MAX"] == "1"
    assert "contains(needs.agent.outputs.output_types, 'create_issue')" in job.condition


def test_noop_needs_only_contents_read():
    kind = _kind("noop")
    job = build_simple_job(_ctx(), kind, parse_simple_config({"noop": None}, kind))
    assert job.permissions.render() == "contents: read"


def test_hide_comment_allowed_reasons_are_json():
    kind = _kind("hide-comment")
    config = parse_simple_config({"hide-comment": {"allowed-reasons": ["spam", "outdated"]}}, kind)
    job = build_simple_job(_ctx(), kind, config)
    assert json.loads(job.env["GH_AW_HIDE_COMMENT_ALLOWED_REASONS"]) == ["spam", "outdated"]


def test_global_token_and_runs_on_apply_to_kind_jobs():
    kind = _kind("add-comment")
    ctx = _ctx(github_token="${{ secrets.BOT_TOKEN }}", runs_on="self-hosted", extra_env={"FOO": "bar"})
    job = build_simple_job(ctx, kind, parse_simple_config({"add-comment": None}, kind))

    script_step = next(step for step in job.steps if step.get("id") == "add_comment")
    assert script_step["with"]["github-token"] == "${{ secrets.BOT_TOKEN }}"
    assert job.runs_on == "self-hosted"
    assert job.env["FOO"] == "bar"


def test_release_mode_skips_actions_checkout():
    kind = _kind("noop")
    config = parse_simple_config({"noop": None}, kind)

    dev = build_simple_job(_ctx(), kind, config)
    assert any(step["name"] == "Checkout actions folder" for step in dev.steps)

    release_ctx = _ctx(config=CompilerConfig(action_mode="release", version="v1.2.3"))
    release = build_simple_job(release_ctx, kind, config)
    assert not any(step["name"] == "Checkout actions folder" for step in release.steps)
    setup = next(step for step in release.steps if step["name"] == "Setup Scripts")
    assert setup["uses"] == "github/gh-aw/actions/setup@v1.2.3"


# ---- missing-tool / missing-data ---------------------------------------------


def test_missing_tool_false_disables():
    assert parse_missing_report_config({"missing-tool": False}, MISSING_TOOL) is None


def test_missing_tool_null_enables_defaults():
    config = parse_missing_report_config({"missing-tool": None}, MISSING_TOOL)
    assert config.create_issue is True
    assert config.title_prefix == "[missing tool]"
    assert config.labels == ()
    assert config.max is None

    job = build_missing_report_job(_ctx(), MISSING_TOOL, config)
    assert job.name == "missing_tool"
    assert job.env["GH_AW_MISSING_TOOL_CREATE_ISSUE"] == "true"
    assert job.env["GH_AW_MISSING_TOOL_TITLE_PREFIX"] == "[missing tool]"
    assert "GH_AW_MISSING_TOOL_MAX" not in job.env
    assert job.permissions.render() == "contents: read\nissues: write"
    assert set(job.outputs) == {"tools_reported", "total_count"}


def test_missing_data_without_issue_creation_drops_issues_write():
    config = parse_missing_report_config(
        {"missing-data": {"create-issue": False, "max": 4, "labels": ["data"]}}, MISSING_DATA
    )
    job = build_missing_report_job(_ctx(), MISSING_DATA, config)
    assert job.permissions.render() == "contents: read"
    assert job.env["GH_AW_MISSING_DATA_MAX"] == "4"
    assert json.loads(job.env["GH_AW_MISSING_DATA_LABELS"]) == ["data"]
    assert "GH_AW_MISSING_DATA_CREATE_ISSUE" not in job.env
    assert job.env["GH_AW_MISSING_DATA_TITLE_PREFIX"] == "[missing data]"


# ---- assign-to-agent ---------------------------------------------------------------


def test_assign_to_agent_job():
    config = parse_assign_to_agent_config(
        {"assign-to-agent": {"name": "copilot", "allowed": ["copilot"], "target": "*"}}
    )
    job = build_assign_to_agent_job(_ctx(), config)
    assert job.env["GH_AW_AGENT_DEFAULT"] == "copilot"
    assert job.env["GH_AW_AGENT_MAX"] == "1"
    assert job.env["GH_AW_AGENT_TARGET"] == "*"
    assert job.env["GH_AW_AGENT_ALLOWED"] == "copilot"
    assert job.permissions.to_dict() == {
        "actions": "write",
        "contents": "write",
        "issues": "write",
        "pull-requests": "write",
    }
    assert "assigned_agents" in job.outputs


# ---- code scanning -----------------------------------------------------------------


def test_code_scanning_driver_defaults_to_frontmatter_name():
    config = parse_code_scanning_alert_config({"create-code-scanning-alert": None})
    assert config.max is None
    job = build_code_scanning_alert_job(_ctx(), config)

    assert job.env["GH_AW_SECURITY_REPORT_DRIVER"] == "Nightly Security Scan"
    assert job.env["GH_AW_WORKFLOW_FILENAME"] == "security-scan"
    assert "GH_AW_SECURITY_REPORT_MAX" not in job.env
    assert job.permissions.render() == "actions: read\ncontents: read\nsecurity-events: write"
    assert set(job.outputs) == {"sarif_file", "findings_count", "artifact_uploaded", "codeql_uploaded"}


def test_code_scanning_upload_steps_follow_alert_step():
    config = parse_code_scanning_alert_config(
        {"create-code-scanning-alert": {"driver": "Custom Scanner", "max": 20}}
    )
    job = build_code_scanning_alert_job(_ctx(), config)
    names = [step["name"] for step in job.steps]

    alert = names.index("Create Code Scanning Alert")
    assert names[alert + 1 :] == ["Upload SARIF artifact", "Upload SARIF to GitHub Security"]
    for step in job.steps[alert + 1 :]:
        assert step["if"] == "steps.create_code_scanning_alert.outputs.sarif_file"
    assert job.env["GH_AW_SECURITY_REPORT_DRIVER"] == "Custom Scanner"
    assert job.env["GH_AW_SECURITY_REPORT_MAX"] == "20"


def test_autofix_defaults_to_ten():
    config = parse_autofix_config({"autofix-code-scanning-alert": None})
    assert config.max == 10
    job = build_autofix_job(_ctx(), config)
    assert job.env["GH_AW_AUTOFIX_CODE_SCANNING_ALERT_MAX"] == "10"
    assert job.permissions.render() == "actions: read\ncontents: read\nsecurity-events: write"


@pytest.mark.parametrize("value", [[1, 2], "yes", 3])
def test_malformed_kind_value_uses_defaults(value, caplog):
    with caplog.at_level(logging.WARNING):
        config = parse_simple_config({"create-discussion": value}, _kind("create-discussion"))
    assert config.max == 1
    assert "malformed" in caplog.text
