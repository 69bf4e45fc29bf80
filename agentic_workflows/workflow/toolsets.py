"""GitHub tool-server toolset registry and permission-based toolset inference.

The registry is loaded once from ``data/github_toolsets.yaml``. Inference decides
which toolsets can be enabled for the agent job without hitting permission errors:

- every ``read_scopes`` entry must be granted at ``read`` or ``write``
- unless the tool server is read-only, every ``write_scopes`` entry must be
  granted at ``write`` (``read`` never satisfies a write requirement)

Toolsets with no requirements are always compatible. Results keep the order of
the candidate list.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from jobkit.permissions import ALL_SCOPES, PermissionSet

from agentic_workflows.foundation.config_io import load_yaml_mapping

logger = logging.getLogger(__name__)

TOOLSETS_DATA_PATH = Path(__file__).resolve().parent / "data" / "github_toolsets.yaml"


@dataclass(frozen=True)
class ToolsetDefinition:
    name: str
    tools: tuple[str, ...] = ()
    read_scopes: tuple[str, ...] = ()
    write_scopes: tuple[str, ...] = ()
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise TypeError("ToolsetDefinition.name must be a non-empty string")
        for attr in ("read_scopes", "write_scopes"):
            scopes = tuple(getattr(self, attr))
            unknown = [scope for scope in scopes if scope not in ALL_SCOPES]
            if unknown:
                raise ValueError(
                    f"Toolset {self.name}.{attr} has unknown scopes: {', '.join(unknown)}"
                )
            object.__setattr__(self, attr, scopes)
        object.__setattr__(self, "tools", tuple(self.tools))

    @property
    def has_requirements(self) -> bool:
        return bool(self.read_scopes or self.write_scopes)


@dataclass(frozen=True)
class ToolsetRegistry:
    definitions: tuple[ToolsetDefinition, ...]
    defaults: tuple[str, ...]

    def __post_init__(self) -> None:
        names = [definition.name for definition in self.definitions]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate toolset names in registry: {names}")
        unknown = [name for name in self.defaults if name not in names]
        if unknown:
            raise ValueError(f"Default toolsets missing from registry: {', '.join(unknown)}")

    def get(self, name: str) -> ToolsetDefinition | None:
        for definition in self.definitions:
            if definition.name == name:
                return definition
        return None

    def names(self) -> tuple[str, ...]:
        return tuple(definition.name for definition in self.definitions)


def _parse_scope_list(raw: Any, *, path: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise TypeError(f"{path} must be a list of strings (type={type(raw).__name__})")
    return tuple(item.strip() for item in raw)


def parse_toolset_registry(payload: Mapping[str, Any], *, source: str) -> ToolsetRegistry:
    raw_toolsets = payload.get("toolsets")
    if not isinstance(raw_toolsets, Mapping) or not raw_toolsets:
        raise ValueError(f"{source}: toolsets must be a non-empty mapping")

    definitions: list[ToolsetDefinition] = []
    for name, entry in raw_toolsets.items():
        path = f"{source}: toolsets.{name}"
        if not isinstance(entry, Mapping):
            raise TypeError(f"{path} must be a mapping (type={type(entry).__name__})")
        definitions.append(
            ToolsetDefinition(
                name=str(name),
                tools=_parse_scope_list(entry.get("tools"), path=f"{path}.tools"),
                read_scopes=_parse_scope_list(entry.get("read_scopes"), path=f"{path}.read_scopes"),
                write_scopes=_parse_scope_list(entry.get("write_scopes"), path=f"{path}.write_scopes"),
                description=entry.get("description"),
            )
        )

    defaults = _parse_scope_list(payload.get("defaults"), path=f"{source}: defaults")
    return ToolsetRegistry(definitions=tuple(definitions), defaults=defaults)


@lru_cache(maxsize=1)
def get_toolset_registry() -> ToolsetRegistry:
    payload = load_yaml_mapping(str(TOOLSETS_DATA_PATH))
    registry = parse_toolset_registry(payload, source=TOOLSETS_DATA_PATH.name)
    logger.debug("Loaded %d toolset definitions", len(registry.definitions))
    return registry


class ToolsetInferenceEngine:
    """Infer the toolsets usable under a permission set."""

    def __init__(self, registry: ToolsetRegistry | None = None) -> None:
        self._registry = registry or get_toolset_registry()

    @property
    def default_toolsets(self) -> tuple[str, ...]:
        return self._registry.defaults

    def get_toolset_permissions(self, name: str) -> ToolsetDefinition | None:
        return self._registry.get(name)

    def all_toolsets(self) -> tuple[str, ...]:
        return self._registry.names()

    def is_compatible(
        self, name: str, permissions: PermissionSet | None, *, read_only: bool
    ) -> bool:
        definition = self._registry.get(name)
        if definition is None:
            logger.warning("Unknown toolset %s, skipping", name)
            return False

        granted = permissions if permissions is not None else PermissionSet.empty()
        for scope in definition.read_scopes:
            if not granted.satisfies(scope, "read"):
                logger.debug("Toolset %s incompatible: missing read permission %s", name, scope)
                return False
        if not read_only:
            for scope in definition.write_scopes:
                if not granted.satisfies(scope, "write"):
                    logger.debug(
                        "Toolset %s incompatible: missing write permission %s", name, scope
                    )
                    return False
        return True

    def infer_from_toolsets(
        self,
        permissions: PermissionSet | None,
        names: Iterable[str],
        *,
        read_only: bool,
    ) -> list[str]:
        candidates = list(names)
        if permissions is None:
            logger.debug("No permissions provided; only zero-requirement toolsets qualify")
        compatible = [
            name for name in candidates if self.is_compatible(name, permissions, read_only=read_only)
        ]
        logger.debug(
            "Inferred %d compatible toolsets from %d candidates (read_only=%s)",
            len(compatible),
            len(candidates),
            read_only,
        )
        return compatible

    def infer_from_defaults(self, permissions: PermissionSet | None, *, read_only: bool) -> list[str]:
        return self.infer_from_toolsets(permissions, self._registry.defaults, read_only=read_only)
