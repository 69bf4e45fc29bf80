from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from jobkit.config_namespace import ConfigNamespace

from agentic_workflows.foundation.config_io import load_config

logger = logging.getLogger(__name__)

ActionMode = Literal["dev", "release"]
ALLOWED_ACTION_MODES: tuple[str, ...] = ("dev", "release")

DEFAULT_ACTION_REPO = "github/gh-aw/actions/setup"
DEFAULT_RUNS_ON = "ubuntu-latest"
DEFAULT_WORKFLOWS_DIR = ".github/workflows"


@dataclass(frozen=True)
class CompilerConfig:
    """Output-affecting compiler options.

    Passed explicitly through every builder call so concurrent compilations never
    share state. ``dev`` mode references the setup action from a local checkout
    (the agent job needs ``contents: read``); ``release`` mode pins a published
    ref and adds no implicit grant.
    """

    action_mode: ActionMode = "dev"
    version: str = "dev"
    action_ref: str | None = None
    trial_mode: bool = False
    check_lock_freshness: bool = True
    runs_on: str = DEFAULT_RUNS_ON
    workflows_dir: str = DEFAULT_WORKFLOWS_DIR

    def __post_init__(self) -> None:
        if self.action_mode not in ALLOWED_ACTION_MODES:
            raise ValueError(
                f"action_mode must be one of: {', '.join(ALLOWED_ACTION_MODES)} (got {self.action_mode!r})"
            )
        if not isinstance(self.version, str) or not self.version.strip():
            raise ValueError("version must be a non-empty string")

    @property
    def is_release(self) -> bool:
        return self.action_mode == "release"

    @property
    def setup_action_uses(self) -> str:
        if not self.is_release:
            return "./actions/setup"
        ref = self.action_ref or self.version
        return f"{DEFAULT_ACTION_REPO}@{ref}"

    def with_overrides(self, **overrides: Any) -> "CompilerConfig":
        values = {
            "action_mode": self.action_mode,
            "version": self.version,
            "action_ref": self.action_ref,
            "trial_mode": self.trial_mode,
            "check_lock_freshness": self.check_lock_freshness,
            "runs_on": self.runs_on,
            "workflows_dir": self.workflows_dir,
        }
        for key, value in overrides.items():
            if key not in values:
                raise ValueError(f"Unknown CompilerConfig field: {key}")
            if value is not None:
                values[key] = value
        return CompilerConfig(**values)  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any], *, path: str = "compiler") -> "CompilerConfig":
        """Parse the ``compiler`` section of ``aw-compiler.yaml``. Unknown keys fail."""

        if not isinstance(cfg, Mapping):
            raise TypeError(f"{path} must be a mapping (type={type(cfg).__name__})")

        ns = ConfigNamespace(dict(cfg), path=path)
        config = cls(
            action_mode=ns.get_str("action_mode", default="dev", choices=ALLOWED_ACTION_MODES),  # type: ignore[arg-type]
            version=ns.get_str("version", default="dev") or "dev",
            action_ref=ns.get_str("action_ref", default=None),
            trial_mode=ns.get_bool("trial_mode", default=False),
            check_lock_freshness=ns.get_bool("check_lock_freshness", default=True),
            runs_on=ns.get_str("runs_on", default=DEFAULT_RUNS_ON) or DEFAULT_RUNS_ON,
            workflows_dir=ns.get_str("workflows_dir", default=DEFAULT_WORKFLOWS_DIR)
            or DEFAULT_WORKFLOWS_DIR,
        )
        ns.assert_consumed()
        logger.debug("Compiler config: %s", ns.effective_values())
        return config


def load_compiler_config(
    *,
    config_path: str | None = None,
    start_dir: str | None = None,
) -> tuple[CompilerConfig, dict[str, Any]]:
    cfg, meta = load_config(config_path=config_path, start_dir=start_dir)
    section = cfg.get("compiler", {})
    unknown = sorted(str(key) for key in cfg.keys() if key != "compiler")
    if unknown:
        raise ValueError(f"Unknown config keys under <root>: {', '.join(unknown)} (consumed: compiler)")
    return CompilerConfig.from_dict(section or {}), meta
