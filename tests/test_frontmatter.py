import pytest

from agentic_workflows.foundation.frontmatter import parse_frontmatter, read_frontmatter_file


def test_bare_on_key_is_restored():
    document = parse_frontmatter("---\non:\n  issues:\n    types: [opened]\n---\n\n# Triage\n")
    assert document.has_frontmatter
    assert document.frontmatter["on"] == {"issues": {"types": ["opened"]}}
    assert True not in document.frontmatter
    assert document.markdown == "# Triage"


def test_text_without_frontmatter_is_all_markdown():
    document = parse_frontmatter("# Just a prompt\n")
    assert not document.has_frontmatter
    assert document.frontmatter == {}
    assert document.markdown == "# Just a prompt\n"


def test_empty_frontmatter_is_an_empty_mapping():
    document = parse_frontmatter("---\n---\nBody")
    assert document.frontmatter == {}
    assert document.markdown == "Body"


def test_unterminated_frontmatter_raises():
    with pytest.raises(ValueError, match=r"Unterminated frontmatter in wf\.md"):
        parse_frontmatter("---\non: push\n", source="wf.md")


def test_non_mapping_frontmatter_raises():
    with pytest.raises(ValueError, match=r"must be a YAML mapping \(type=list\)"):
        parse_frontmatter("---\n- push\n---\n")


def test_invalid_yaml_names_source(tmp_path):
    path = tmp_path / "broken.md"
    path.write_text("---\non: [push\n---\n", encoding="utf-8")
    with pytest.raises(ValueError, match="broken.md"):
        read_frontmatter_file(str(path))
