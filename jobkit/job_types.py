from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeAlias

from jobkit.permissions import PermissionSet

Step: TypeAlias = dict[str, Any]


@dataclass(frozen=True)
class ConcurrencySpec:
    group: str
    cancel_in_progress: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.group, str) or not self.group.strip():
            raise ValueError("ConcurrencySpec.group must be a non-empty string")

    def to_yaml_value(self) -> dict[str, Any]:
        out: dict[str, Any] = {"group": self.group}
        if self.cancel_in_progress:
            out["cancel-in-progress"] = True
        return out


@dataclass(frozen=True)
class JobSpec:
    """One job of a compiled graph. Steps are opaque mappings; env and outputs are read-only."""

    name: str
    needs: tuple[str, ...] = ()
    permissions: PermissionSet = field(default_factory=PermissionSet)
    condition: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    steps: tuple[Step, ...] = ()
    outputs: Mapping[str, str] = field(default_factory=dict)
    runs_on: str = "ubuntu-latest"
    concurrency: ConcurrencySpec | None = None
    timeout_minutes: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise TypeError("JobSpec.name must be a non-empty string")
        object.__setattr__(self, "name", self.name.strip())

        needs = tuple(str(item).strip() for item in self.needs)
        if any(not item for item in needs):
            raise ValueError(f"JobSpec.needs entries must be non-empty (job={self.name})")
        if len(set(needs)) != len(needs):
            raise ValueError(f"JobSpec.needs contains duplicates (job={self.name}): {list(needs)}")
        if self.name in needs:
            raise ValueError(f"JobSpec cannot depend on itself: {self.name}")
        object.__setattr__(self, "needs", needs)

        if not isinstance(self.permissions, PermissionSet):
            raise TypeError(
                f"JobSpec.permissions must be a PermissionSet (job={self.name}, "
                f"type={type(self.permissions).__name__})"
            )
        if self.condition is not None:
            condition = str(self.condition).strip()
            object.__setattr__(self, "condition", condition or None)

        object.__setattr__(self, "env", MappingProxyType({str(k): str(v) for k, v in self.env.items()}))
        object.__setattr__(
            self, "outputs", MappingProxyType({str(k): str(v) for k, v in self.outputs.items()})
        )
        for idx, step in enumerate(self.steps):
            if not isinstance(step, dict):
                raise TypeError(
                    f"JobSpec.steps[{idx}] must be a mapping (job={self.name}, type={type(step).__name__})"
                )
        object.__setattr__(self, "steps", tuple(dict(step) for step in self.steps))

    def to_yaml_value(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.needs:
            out["needs"] = self.needs[0] if len(self.needs) == 1 else list(self.needs)
        if self.condition:
            out["if"] = self.condition
        out["runs-on"] = self.runs_on
        out["permissions"] = self.permissions.to_yaml_value()
        if self.concurrency is not None:
            out["concurrency"] = self.concurrency.to_yaml_value()
        if self.timeout_minutes is not None:
            out["timeout-minutes"] = self.timeout_minutes
        if self.env:
            out["env"] = dict(self.env)
        if self.outputs:
            out["outputs"] = dict(self.outputs)
        out["steps"] = [dict(step) for step in self.steps]
        return out
