import itertools

import pytest

from jobkit.permissions import (
    ALL_SCOPES,
    ALLOWED_LEVELS,
    PermissionSet,
    PermissionsBuilder,
    contents_read_with,
    merge_permissions,
)


def _single(scope: str, level: str) -> PermissionSet:
    return PermissionsBuilder().set(scope, level).build()


@pytest.mark.parametrize("scope", ALL_SCOPES)
def test_merge_is_commutative_and_write_dominates(scope):
    for a_level, b_level in itertools.product(ALLOWED_LEVELS, repeat=2):
        a = _single(scope, a_level)
        b = _single(scope, b_level)

        ab = merge_permissions(a, b)
        ba = merge_permissions(b, a)
        assert ab == ba
        assert ab.render() == ba.render()
        if "write" in (a_level, b_level):
            assert ab.level(scope) == "write"


def test_merge_is_associative_across_scopes():
    a = PermissionSet.from_mapping({"contents": "read", "issues": "write"})
    b = PermissionSet.from_mapping({"contents": "write", "discussions": "read"})
    c = PermissionSet.from_mapping({"issues": "read", "pull-requests": "write"})

    left = merge_permissions(merge_permissions(a, b), c)
    right = merge_permissions(a, merge_permissions(b, c))
    assert left == right
    assert left.to_dict() == {
        "contents": "write",
        "discussions": "read",
        "issues": "write",
        "pull-requests": "write",
    }


def test_builder_last_write_wins_and_render_is_sorted():
    permissions = (
        PermissionsBuilder()
        .set("pull-requests", "read")
        .set("contents", "write")
        .set("pull-requests", "write")
        .build()
    )
    assert permissions.render() == "contents: write\npull-requests: write"


def test_get_reports_presence():
    permissions = contents_read_with(issues="write")
    assert permissions.get("issues") == ("write", True)
    assert permissions.get("discussions") == ("none", False)
    assert permissions.satisfies("issues", "read")
    assert not permissions.satisfies("contents", "write")


def test_empty_renders_as_braces():
    assert PermissionSet.empty().render() == "{}"
    assert PermissionSet.parse({}).is_empty


def test_shorthand_is_preserved_verbatim():
    permissions = PermissionSet.parse("read-all")
    assert permissions.render() == "read-all"
    assert permissions.to_yaml_value() == "read-all"
    assert permissions.level("issues") == "read"
    assert not permissions.satisfies("issues", "write")


def test_parse_rejects_unknown_scope():
    with pytest.raises(ValueError, match="bogus"):
        PermissionSet.parse({"bogus": "read"})


def test_parse_rejects_unknown_level():
    with pytest.raises(ValueError):
        PermissionSet.parse({"contents": "admin"})


def test_contents_read_with_translates_underscores():
    permissions = contents_read_with(pull_requests="write")
    assert permissions.to_dict() == {"contents": "read", "pull-requests": "write"}
