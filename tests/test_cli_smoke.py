import logging
from pathlib import Path

import pytest
import yaml

from agentic_workflows import cli


@pytest.fixture(autouse=True)
def _restore_package_logger():
    # cli.main reconfigures the package logger; put it back so caplog keeps working elsewhere.
    logger = logging.getLogger("agentic_workflows")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def _write_config(tmp_path: Path, **compiler) -> Path:
    config_path = tmp_path / "aw-compiler.yaml"
    config_path.write_text(yaml.safe_dump({"compiler": compiler}), encoding="utf-8")
    return config_path


def _write_workflow(directory: Path, name: str, frontmatter: str, body: str = "Do the thing.") -> Path:
    path = directory / f"{name}.md"
    path.write_text(f"---\n{frontmatter}---\n\n# {name.title()}\n\n{body}\n", encoding="utf-8")
    return path


def test_cli_list_safe_outputs_smoke(capsys):
    rc = cli.main(["list-safe-outputs"])
    assert rc == 0

    out = capsys.readouterr().out
    assert "close-issue" in out
    assert "dispatch-workflow" in out
    assert "[fixed-limit]" in out


def test_cli_list_toolsets_smoke(capsys):
    rc = cli.main(["list-toolsets"])
    assert rc == 0

    out = capsys.readouterr().out.splitlines()
    assert any(line.startswith("* context") for line in out)
    assert any("discussions" in line and "write=discussions" in line for line in out)


def test_cli_compile_writes_lock_file(tmp_path):
    workflows = tmp_path / ".github" / "workflows"
    workflows.mkdir(parents=True)
    source = _write_workflow(
        workflows,
        "triage",
        "on:\n  issues:\n    types: [opened]\nsafe-outputs:\n  add-labels:\n    allowed: [bug]\n",
    )
    config_path = _write_config(tmp_path, action_mode="release", version="v0.9.0")

    rc = cli.main(["--config", str(config_path), "compile", str(source)])
    assert rc == 0

    lock = workflows / "triage.lock.yml"
    assert lock.is_file()
    document = yaml.safe_load(lock.read_text(encoding="utf-8"))
    assert list(document["jobs"]) == ["pre_activation", "activation", "agent", "add_labels"]
    assert document["permissions"] == {}


def test_cli_compile_no_emit_leaves_tree_untouched(tmp_path):
    source = _write_workflow(tmp_path, "nightly", "on:\n  schedule:\n    - cron: '0 3 * * *'\n")
    config_path = _write_config(tmp_path)

    rc = cli.main(["--config", str(config_path), "compile", "--no-emit", str(source)])
    assert rc == 0
    assert not (tmp_path / "nightly.lock.yml").exists()


def test_cli_compile_reports_failures(tmp_path):
    good = _write_workflow(tmp_path, "good", "on: workflow_dispatch\n")
    bad = _write_workflow(
        tmp_path, "bad", "on: issues\nsafe-outputs:\n  close-issue:\n    target-repo: '*'\n"
    )
    config_path = _write_config(tmp_path)

    rc = cli.main(["--config", str(config_path), "compile", str(good), str(bad)])
    assert rc == 1
    assert (tmp_path / "good.lock.yml").is_file()
    assert not (tmp_path / "bad.lock.yml").exists()


def test_cli_compile_uses_workflows_dir_from_config(tmp_path, monkeypatch):
    workflows = tmp_path / "flows"
    workflows.mkdir()
    _write_workflow(workflows, "one", "on: workflow_dispatch\n")
    (workflows / "README.md").write_text("# Workflows\n", encoding="utf-8")
    config_path = _write_config(tmp_path, workflows_dir=str(workflows))
    monkeypatch.chdir(tmp_path)

    rc = cli.main(["--config", str(config_path), "compile"])
    assert rc == 0
    assert sorted(p.name for p in workflows.glob("*.lock.yml")) == ["one.lock.yml"]


def test_cli_compile_missing_workflows_dir_fails(tmp_path):
    config_path = _write_config(tmp_path, workflows_dir=str(tmp_path / "missing"))

    assert cli.main(["--config", str(config_path), "compile"]) == 1


def test_cli_compile_resolves_relative_workflows_dir_from_repo_root(tmp_path, monkeypatch):
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'demo'\n", encoding="utf-8")
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "aw-compiler.yaml").write_text(
        yaml.safe_dump({"compiler": {"workflows_dir": "flows"}}), encoding="utf-8"
    )
    workflows = tmp_path / "flows"
    workflows.mkdir()
    _write_workflow(workflows, "nightly", "on: workflow_dispatch\n")
    nested = tmp_path / "docs" / "guides"
    nested.mkdir(parents=True)
    monkeypatch.delenv("AW_COMPILER_CONFIG", raising=False)
    monkeypatch.chdir(nested)

    assert cli.main(["compile"]) == 0
    assert (workflows / "nightly.lock.yml").is_file()
