import logging

import pytest

from jobkit.permissions import PermissionSet

from agentic_workflows.workflow.toolsets import (
    ToolsetInferenceEngine,
    get_toolset_registry,
    parse_toolset_registry,
)


@pytest.fixture
def engine():
    return ToolsetInferenceEngine()


def test_registry_loads_in_file_order(engine):
    names = engine.all_toolsets()
    assert names[:4] == ("context", "repos", "issues", "pull_requests")
    assert "discussions" in names
    assert engine.default_toolsets == ("context", "repos", "issues", "pull_requests")


def test_registry_is_cached():
    assert get_toolset_registry() is get_toolset_registry()


def test_contents_and_issues_read_excludes_pull_requests(engine):
    permissions = PermissionSet.from_mapping({"contents": "read", "issues": "read"})
    assert engine.infer_from_defaults(permissions, read_only=True) == ["context", "repos", "issues"]


def test_empty_permissions_read_only_keeps_only_context(engine):
    assert engine.infer_from_defaults(PermissionSet.empty(), read_only=True) == ["context"]


def test_none_permissions_behave_like_empty(engine):
    assert engine.infer_from_defaults(None, read_only=True) == ["context"]
    assert engine.infer_from_defaults(None, read_only=False) == ["context"]


def test_zero_requirement_toolsets_always_included(engine):
    zero = [
        name
        for name in engine.all_toolsets()
        if not engine.get_toolset_permissions(name).has_requirements
    ]
    assert zero
    for permissions in (None, PermissionSet.empty(), PermissionSet.parse("read-all")):
        for read_only in (True, False):
            result = engine.infer_from_toolsets(permissions, zero, read_only=read_only)
            assert result == zero


def test_write_scope_requires_write_when_not_read_only(engine):
    read_only_grant = PermissionSet.from_mapping({"issues": "read"})
    assert engine.infer_from_toolsets(read_only_grant, ["issues"], read_only=False) == []
    assert engine.infer_from_toolsets(read_only_grant, ["issues"], read_only=True) == ["issues"]


def test_write_satisfies_read(engine):
    permissions = PermissionSet.from_mapping({"discussions": "write"})
    assert engine.infer_from_toolsets(permissions, ["discussions"], read_only=True) == ["discussions"]
    assert engine.infer_from_toolsets(permissions, ["discussions"], read_only=False) == ["discussions"]


def test_output_preserves_input_order(engine):
    permissions = PermissionSet.parse("write-all")
    names = ["discussions", "context", "actions", "repos"]
    assert engine.infer_from_toolsets(permissions, names, read_only=False) == names


def test_unknown_toolset_is_logged_and_skipped(engine, caplog):
    permissions = PermissionSet.from_mapping({"contents": "read"})
    with caplog.at_level(logging.WARNING, logger="agentic_workflows.workflow.toolsets"):
        result = engine.infer_from_toolsets(permissions, ["repos", "nope"], read_only=True)
    assert result == ["repos"]
    assert "nope" in caplog.text


def test_get_toolset_permissions_unknown_returns_none(engine):
    assert engine.get_toolset_permissions("nope") is None
    assert engine.get_toolset_permissions("repos").read_scopes == ("contents",)


def test_parse_registry_rejects_unknown_scope():
    payload = {"defaults": [], "toolsets": {"x": {"read_scopes": ["bogus"]}}}
    with pytest.raises(ValueError, match="unknown scopes: bogus"):
        parse_toolset_registry(payload, source="inline")


def test_parse_registry_rejects_missing_default():
    payload = {"defaults": ["missing"], "toolsets": {"x": {}}}
    with pytest.raises(ValueError, match="Default toolsets missing"):
        parse_toolset_registry(payload, source="inline")
