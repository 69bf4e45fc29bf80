"""Permission scopes, levels and the immutable `PermissionSet` value.

A permission set maps a scope (``contents``, ``issues``...) to a level
(``none`` < ``read`` < ``write``). Write implies read for compatibility checks
and a scope absent from a set behaves like ``none``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

PermissionScope: TypeAlias = Literal[
    "actions",
    "attestations",
    "checks",
    "contents",
    "deployments",
    "discussions",
    "id-token",
    "issues",
    "metadata",
    "models",
    "packages",
    "pages",
    "pull-requests",
    "repository-projects",
    "organization-projects",
    "security-events",
    "statuses",
]
PermissionLevel: TypeAlias = Literal["none", "read", "write"]
PermissionShorthand: TypeAlias = Literal["read-all", "write-all"]

ALL_SCOPES: tuple[str, ...] = (
    "actions",
    "attestations",
    "checks",
    "contents",
    "deployments",
    "discussions",
    "id-token",
    "issues",
    "metadata",
    "models",
    "packages",
    "pages",
    "pull-requests",
    "repository-projects",
    "organization-projects",
    "security-events",
    "statuses",
)
ALLOWED_LEVELS: tuple[str, ...] = ("none", "read", "write")
ALLOWED_SHORTHANDS: tuple[str, ...] = ("read-all", "write-all")

_LEVEL_RANK: dict[str, int] = {"none": 0, "read": 1, "write": 2}

logger = logging.getLogger(__name__)


def _check_scope(scope: str) -> str:
    if not isinstance(scope, str) or scope.strip() not in ALL_SCOPES:
        raise ValueError(
            f"Unknown permission scope: {scope!r} (allowed: {', '.join(ALL_SCOPES)})"
        )
    return scope.strip()


def _check_level(level: str, *, scope: str) -> str:
    if not isinstance(level, str) or level.strip() not in ALLOWED_LEVELS:
        raise ValueError(
            f"Invalid permission level for {scope}: {level!r} (allowed: {', '.join(ALLOWED_LEVELS)})"
        )
    return level.strip()


def level_rank(level: str) -> int:
    return _LEVEL_RANK[level]


def max_level(a: str, b: str) -> str:
    return a if _LEVEL_RANK[a] >= _LEVEL_RANK[b] else b


@dataclass(frozen=True)
class PermissionSet:
    """Immutable scope -> level mapping.

    ``shorthand`` carries the ``read-all`` / ``write-all`` forms verbatim so an
    explicit user declaration renders exactly as written.
    """

    _levels: tuple[tuple[str, str], ...] = ()
    shorthand: str | None = None

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for scope, level in self._levels:
            _check_scope(scope)
            _check_level(level, scope=scope)
            if scope in seen:
                raise ValueError(f"Duplicate permission scope: {scope}")
            seen.add(scope)
        if self.shorthand is not None and self.shorthand not in ALLOWED_SHORTHANDS:
            raise ValueError(
                f"Invalid permission shorthand: {self.shorthand!r} "
                f"(allowed: {', '.join(ALLOWED_SHORTHANDS)})"
            )
        if self.shorthand is not None and self._levels:
            raise ValueError("A shorthand permission set cannot also carry per-scope levels")
        object.__setattr__(self, "_levels", tuple(sorted(self._levels)))

    @classmethod
    def empty(cls) -> "PermissionSet":
        return cls()

    @classmethod
    def from_mapping(cls, levels: Mapping[str, str]) -> "PermissionSet":
        return cls(_levels=tuple((str(k), str(v)) for k, v in levels.items()))

    @classmethod
    def parse(cls, raw: Any, *, path: str = "permissions") -> "PermissionSet":
        """Parse a frontmatter ``permissions`` value (shorthand string or mapping)."""

        if isinstance(raw, str):
            value = raw.strip()
            if value not in ALLOWED_SHORTHANDS:
                raise ValueError(
                    f"{path} must be a mapping or one of: {', '.join(ALLOWED_SHORTHANDS)} (got {raw!r})"
                )
            return cls(shorthand=value)
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise TypeError(f"{path} must be a mapping or string (type={type(raw).__name__})")

        builder = PermissionsBuilder()
        for key, value in raw.items():
            scope = _check_scope(str(key))
            builder.set(scope, _check_level(str(value), scope=f"{path}.{scope}"))
        return builder.build()

    @property
    def is_empty(self) -> bool:
        return not self._levels and self.shorthand is None

    def scopes(self) -> tuple[str, ...]:
        return tuple(scope for scope, _level in self._levels)

    def get(self, scope: str) -> tuple[str, bool]:
        """Return ``(level, present)``; shorthands grant every scope."""

        if self.shorthand == "read-all":
            return "read", True
        if self.shorthand == "write-all":
            return "write", True
        for candidate, level in self._levels:
            if candidate == scope:
                return level, True
        return "none", False

    def level(self, scope: str) -> str:
        return self.get(scope)[0]

    def satisfies(self, scope: str, required: str) -> bool:
        return _LEVEL_RANK[self.level(scope)] >= _LEVEL_RANK[required]

    def to_dict(self) -> dict[str, str]:
        return dict(self._levels)

    def render(self) -> str:
        if self.shorthand is not None:
            return self.shorthand
        if not self._levels:
            return "{}"
        return "\n".join(f"{scope}: {level}" for scope, level in self._levels)

    def to_yaml_value(self) -> str | dict[str, str]:
        if self.shorthand is not None:
            return self.shorthand
        return self.to_dict()

    def __str__(self) -> str:
        return self.render()


@dataclass
class PermissionsBuilder:
    """Accumulator for building a `PermissionSet` with chained `set` calls."""

    _levels: dict[str, str] = field(default_factory=dict)

    def set(self, scope: str, level: str) -> "PermissionsBuilder":
        scope = _check_scope(scope)
        self._levels[scope] = _check_level(level, scope=scope)
        return self

    def update(self, permissions: PermissionSet) -> "PermissionsBuilder":
        for scope, level in permissions.to_dict().items():
            self.set(scope, level)
        return self

    def build(self) -> PermissionSet:
        logger.debug("Building permissions: scope_count=%d", len(self._levels))
        return PermissionSet.from_mapping(self._levels)


def merge_permissions(a: PermissionSet, b: PermissionSet) -> PermissionSet:
    """Per-scope maximum of two sets; shorthands expand before merging."""

    if a.shorthand == "write-all" or b.shorthand == "write-all":
        return PermissionSet(shorthand="write-all")

    merged: dict[str, str] = {}
    for source in (a, b):
        if source.shorthand == "read-all":
            for scope in ALL_SCOPES:
                merged[scope] = max_level(merged.get(scope, "none"), "read")
            continue
        for scope, level in source.to_dict().items():
            merged[scope] = max_level(merged.get(scope, "none"), level)
    return PermissionSet.from_mapping(merged)


def contents_read() -> PermissionSet:
    return PermissionsBuilder().set("contents", "read").build()


def contents_read_with(**writes: str) -> PermissionSet:
    """``contents: read`` plus the given scopes; keyword names use underscores."""

    builder = PermissionsBuilder().set("contents", "read")
    for key, level in writes.items():
        builder.set(key.replace("_", "-"), level)
    return builder.build()
