import logging

from jobkit.permissions import PermissionSet

from agentic_workflows.safe_outputs.common import SafeOutputContext
from agentic_workflows.safe_outputs.entity_ops import (
    ENTITY_OPERATIONS,
    build_entity_job,
    parse_entity_config,
)
from agentic_workflows.workflow.spec import WorkflowSpec, parse_triggers


def _definition(key: str):
    return next(d for d in ENTITY_OPERATIONS if d.config_key == key)


def _ctx(**kwargs) -> SafeOutputContext:
    spec = WorkflowSpec(
        workflow_id="triage",
        name="Issue Triage",
        triggers=parse_triggers("issues"),
        source="octo/agents/triage.md@v1",
        tracker_id="triage-01",
    )
    return SafeOutputContext(spec=spec, **kwargs)


def test_table_covers_close_and_update_for_every_entity():
    pairs = {(d.operation, d.entity) for d in ENTITY_OPERATIONS}
    assert pairs == {
        (operation, entity)
        for operation in ("close", "update")
        for entity in ("issue", "pull_request", "discussion")
    }


def test_absent_key_returns_none():
    assert parse_entity_config({}, _definition("close-issue")) is None
    assert parse_entity_config({"close-issue": False}, _definition("close-issue")) is None


def test_null_value_uses_defaults():
    config = parse_entity_config({"close-issue": None}, _definition("close-issue"))
    assert config.max == 1
    assert config.target.target is None


def test_wildcard_target_repo_returns_none():
    raw = {"close-issue": {"target-repo": "*"}}
    assert parse_entity_config(raw, _definition("close-issue")) is None


def test_unknown_sub_keys_are_logged_and_ignored(caplog):
    raw = {"close-issue": {"max": 2, "colour": "blue"}}
    with caplog.at_level(logging.WARNING):
        config = parse_entity_config(raw, _definition("close-issue"))
    assert config.max == 2
    assert "safe-outputs.close-issue.colour" in caplog.text


def test_close_issue_job_has_exactly_definition_permissions():
    definition = _definition("close-issue")
    config = parse_entity_config({"close-issue": {"required-labels": ["stale"]}}, definition)
    job = build_entity_job(_ctx(), definition, config)

    assert job.name == "close_issue"
    assert job.needs == ("agent",)
    assert job.permissions == definition.permissions_func()
    assert job.permissions.render() == "contents: read\nissues: write"
    assert job.env["GH_AW_CLOSE_ISSUE_REQUIRED_LABELS"] == "stale"
    assert job.env["GH_AW_WORKFLOW_NAME"] == "Issue Triage"
    assert job.env["GH_AW_WORKFLOW_SOURCE"] == "octo/agents/triage.md@v1"
    assert job.env["GH_AW_TRACKER_ID"] == "triage-01"
    assert job.outputs == {
        "issue_number": "${{ steps.close_issue.outputs.issue_number }}",
        "issue_url": "${{ steps.close_issue.outputs.issue_url }}",
    }


def test_condition_checks_output_type_and_triggering_entity():
    definition = _definition("close-issue")
    config = parse_entity_config({"close-issue": None}, definition)
    job = build_entity_job(_ctx(), definition, config)
    assert job.condition == (
        "!cancelled() && needs.agent.result != 'skipped' && "
        "contains(needs.agent.outputs.output_types, 'close_issue') && "
        "(github.event.issue.number || github.event.comment.issue.number)"
    )


def test_explicit_target_drops_event_condition():
    definition = _definition("close-pull-request")
    config = parse_entity_config({"close-pull-request": {"target": "*"}}, definition)
    job = build_entity_job(_ctx(), definition, config)
    assert "github.event" not in job.condition
    assert job.env["GH_AW_CLOSE_PR_TARGET"] == "*"


def test_discussion_category_filter_is_inert_at_zero_value():
    definition = _definition("close-discussion")
    plain = build_entity_job(_ctx(), definition, parse_entity_config({"close-discussion": None}, definition))
    assert not any(key.endswith("_REQUIRED_CATEGORY") for key in plain.env)

    filtered = build_entity_job(
        _ctx(),
        definition,
        parse_entity_config({"close-discussion": {"required-category": "Ideas"}}, definition),
    )
    assert filtered.env["GH_AW_CLOSE_DISCUSSION_REQUIRED_CATEGORY"] == "Ideas"
    assert filtered.permissions.render() == "contents: read\ndiscussions: write"


def test_category_filter_ignored_for_issues(caplog):
    definition = _definition("close-issue")
    with caplog.at_level(logging.WARNING):
        config = parse_entity_config({"close-issue": {"required-category": "Ideas"}}, definition)
    assert config.discussion.required_category is None
    assert "required-category" in caplog.text


def test_update_issue_fields_key_presence_enables():
    definition = _definition("update-issue")
    config = parse_entity_config({"update-issue": {"title": None, "status": False}}, definition)
    assert config.fields.title is True
    assert config.fields.status is True
    assert config.fields.body is None

    job = build_entity_job(_ctx(), definition, config)
    assert job.env["GH_AW_UPDATE_ISSUE_TITLE"] == "true"
    assert job.env["GH_AW_UPDATE_ISSUE_STATUS"] == "true"
    assert "GH_AW_UPDATE_ISSUE_BODY" not in job.env


def test_update_pull_request_fields_use_boolean_values():
    definition = _definition("update-pull-request")
    config = parse_entity_config({"update-pull-request": {"title": False, "body": None}}, definition)
    assert config.fields.title is False
    assert config.fields.body is True

    job = build_entity_job(_ctx(), definition, config)
    assert job.env["GH_AW_UPDATE_PR_TITLE"] == "false"
    assert job.env["GH_AW_UPDATE_PR_BODY"] == "true"
    assert job.permissions.render() == "contents: read\npull-requests: write"


def test_allowed_labels_implies_labels_field():
    definition = _definition("update-discussion")
    config = parse_entity_config({"update-discussion": {"allowed-labels": ["bug", "docs"]}}, definition)
    assert config.fields.labels is True
    job = build_entity_job(_ctx(), definition, config)
    assert job.env["GH_AW_UPDATE_DISCUSSION_ALLOWED_LABELS"] == "bug,docs"
    assert job.env["GH_AW_UPDATE_DISCUSSION_LABELS"] == "true"


def test_staged_env_only_without_target_repo():
    definition = _definition("close-issue")
    ctx = _ctx(staged=True)

    local = build_entity_job(ctx, definition, parse_entity_config({"close-issue": None}, definition))
    assert local.env["GH_AW_SAFE_OUTPUTS_STAGED"] == "true"

    remote = build_entity_job(
        ctx, definition, parse_entity_config({"close-issue": {"target-repo": "octo/other"}}, definition)
    )
    assert "GH_AW_SAFE_OUTPUTS_STAGED" not in remote.env
    assert remote.env["GH_AW_CLOSE_ISSUE_TARGET_REPO"] == "octo/other"


def test_entity_job_permissions_never_include_workflow_grants():
    spec = WorkflowSpec(
        workflow_id="wide",
        name="Wide",
        triggers=parse_triggers("issues"),
        permissions=PermissionSet.parse("write-all"),
    )
    definition = _definition("close-issue")
    job = build_entity_job(
        SafeOutputContext(spec=spec), definition, parse_entity_config({"close-issue": None}, definition)
    )
    assert job.permissions.render() == "contents: read\nissues: write"
