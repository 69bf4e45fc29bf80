import pytest

from agentic_workflows.workflow.config import CompilerConfig, load_compiler_config


def test_defaults():
    config = CompilerConfig()
    assert config.action_mode == "dev"
    assert not config.is_release
    assert config.setup_action_uses == "./actions/setup"
    assert config.check_lock_freshness is True


def test_release_mode_pins_action_ref():
    assert CompilerConfig(action_mode="release", version="v2.0.0").setup_action_uses == (
        "github/gh-aw/actions/setup@v2.0.0"
    )
    assert CompilerConfig(action_mode="release", action_ref="abc123").setup_action_uses == (
        "github/gh-aw/actions/setup@abc123"
    )


def test_invalid_action_mode_rejected():
    with pytest.raises(ValueError, match="action_mode must be one of: dev, release"):
        CompilerConfig(action_mode="beta")  # type: ignore[arg-type]


def test_from_dict_unknown_keys_fail():
    with pytest.raises(ValueError, match=r"Unknown config keys under compiler: actionmode"):
        CompilerConfig.from_dict({"actionmode": "release"})


def test_from_dict_strict_types():
    with pytest.raises(TypeError, match=r"compiler\.trial_mode must be a boolean"):
        CompilerConfig.from_dict({"trial_mode": "yes"})


def test_with_overrides_ignores_none_and_rejects_unknown():
    config = CompilerConfig().with_overrides(action_mode="release", version=None)
    assert config.action_mode == "release"
    assert config.version == "dev"

    with pytest.raises(ValueError, match="Unknown CompilerConfig field: mode"):
        CompilerConfig().with_overrides(mode="release")


def test_load_compiler_config_rejects_unknown_sections(tmp_path):
    path = tmp_path / "aw.yaml"
    path.write_text("compiler:\n  action_mode: release\nextras: {}\n", encoding="utf-8")
    with pytest.raises(ValueError, match=r"Unknown config keys under <root>: extras"):
        load_compiler_config(config_path=str(path))


def test_load_compiler_config_from_explicit_path(tmp_path):
    path = tmp_path / "aw.yaml"
    path.write_text("compiler:\n  action_mode: release\n  version: v1.4.0\n", encoding="utf-8")
    config, meta = load_compiler_config(config_path=str(path))
    assert config.setup_action_uses == "github/gh-aw/actions/setup@v1.4.0"
    assert meta["mode"] == "explicit"
