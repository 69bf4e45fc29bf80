"""The compiler's input value: a validated workflow declaration.

`WorkflowSpec` is built from a markdown file's frontmatter by `workflow_spec_from_document`.
Builders only read it; nothing downstream mutates it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from jobkit.permissions import PermissionSet

from agentic_workflows.foundation.frontmatter import FrontmatterDocument, read_frontmatter_file

logger = logging.getLogger(__name__)

DEFAULT_ROLES: tuple[str, ...] = ("admin", "maintainer", "write")

# Events a command trigger listens on; the command name is matched at run time.
COMMAND_EVENTS: tuple[str, ...] = (
    "issues",
    "issue_comment",
    "pull_request",
    "pull_request_review_comment",
    "discussion",
    "discussion_comment",
)

# Events that never carry an untrusted actor, so no membership check is needed.
UNGATED_EVENTS: frozenset[str] = frozenset({"schedule", "workflow_dispatch", "merge_group"})

_TRIGGER_OPTION_KEYS: tuple[str, ...] = ("command", "slash_command", "reaction", "stop-after", "roles")


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen frontmatter value (for YAML rendering)."""

    if isinstance(value, Mapping):
        return {str(k): thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class TriggerSpec:
    events: tuple[str, ...] = ()
    command_names: tuple[str, ...] = ()
    raw: Any = None

    @property
    def is_command(self) -> bool:
        return bool(self.command_names)

    def has_event(self, *names: str) -> bool:
        return any(name in self.events for name in names)

    @property
    def is_pull_request(self) -> bool:
        return any(event.startswith("pull_request") for event in self.events)

    @property
    def is_issue(self) -> bool:
        return self.has_event("issues", "issue_comment")

    @property
    def is_discussion(self) -> bool:
        return any(event.startswith("discussion") for event in self.events)

    @property
    def is_push(self) -> bool:
        return self.has_event("push")

    @property
    def is_workflow_run(self) -> bool:
        return self.has_event("workflow_run")

    @property
    def has_special_trigger(self) -> bool:
        return self.is_command or self.is_issue or self.is_pull_request or self.is_discussion or self.is_push

    def render(self) -> dict[str, Any]:
        """The ``on:`` block of the compiled workflow."""

        out: dict[str, Any] = {}
        raw = self.raw
        if isinstance(raw, str):
            out[raw] = None
        elif isinstance(raw, (list, tuple)):
            for event in raw:
                out[str(event)] = None
        elif isinstance(raw, Mapping):
            for key, value in raw.items():
                if key in _TRIGGER_OPTION_KEYS:
                    continue
                out[str(key)] = thaw(value)
        if self.is_command:
            for event in COMMAND_EVENTS:
                out.setdefault(event, None)
        return out


def parse_triggers(raw: Any, *, path: str = "on") -> TriggerSpec:
    if raw is None:
        return TriggerSpec()
    if isinstance(raw, str):
        return TriggerSpec(events=(raw.strip(),), raw=raw.strip())
    if isinstance(raw, (list, tuple)):
        events = []
        for idx, item in enumerate(raw):
            if not isinstance(item, str) or not item.strip():
                raise TypeError(f"{path}[{idx}] must be a non-empty string")
            events.append(item.strip())
        return TriggerSpec(events=tuple(events), raw=_freeze(list(events)))
    if not isinstance(raw, Mapping):
        raise TypeError(f"{path} must be a string, list or mapping (type={type(raw).__name__})")

    command_names: list[str] = []
    for key in ("command", "slash_command"):
        if key not in raw:
            continue
        value = raw[key]
        if isinstance(value, str):
            command_names.append(value.strip())
        elif isinstance(value, Mapping):
            name = value.get("name")
            if isinstance(name, str):
                command_names.append(name.strip())
            elif isinstance(name, list):
                command_names.extend(str(item).strip() for item in name)
        elif isinstance(value, list):
            command_names.extend(str(item).strip() for item in value)
        elif value is None:
            command_names.append("")

    events = tuple(str(key) for key in raw.keys() if key not in _TRIGGER_OPTION_KEYS)
    if command_names:
        events = events + tuple(event for event in COMMAND_EVENTS if event not in events)
    return TriggerSpec(
        events=events,
        command_names=tuple(name for name in command_names),
        raw=_freeze(raw),
    )


@dataclass(frozen=True)
class WorkflowSpec:
    """Everything the job-graph builder needs about one workflow."""

    workflow_id: str
    name: str
    triggers: TriggerSpec = field(default_factory=TriggerSpec)
    frontmatter_name: str | None = None
    source: str | None = None
    tracker_id: str | None = None
    engine_id: str | None = None
    engine_concurrency: Any = None
    permissions: PermissionSet | None = None
    safe_outputs: Mapping[str, Any] = field(default_factory=dict)
    stop_time: str | None = None
    reaction: str | None = None
    roles: tuple[str, ...] = DEFAULT_ROLES
    jobs: Mapping[str, Any] = field(default_factory=dict)
    github_toolsets: tuple[str, ...] | None = None
    github_read_only: bool = True
    concurrency: Any = None
    timeout_minutes: int | None = None
    checkout: bool = True
    markdown: str = ""
    source_path: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.workflow_id, str) or not self.workflow_id.strip():
            raise TypeError("WorkflowSpec.workflow_id must be a non-empty string")
        if not isinstance(self.name, str) or not self.name.strip():
            raise TypeError("WorkflowSpec.name must be a non-empty string")
        if self.permissions is not None and not isinstance(self.permissions, PermissionSet):
            raise TypeError(
                f"WorkflowSpec.permissions must be a PermissionSet or None "
                f"(type={type(self.permissions).__name__})"
            )
        object.__setattr__(self, "safe_outputs", _freeze(dict(self.safe_outputs or {})))
        object.__setattr__(self, "jobs", _freeze(dict(self.jobs or {})))
        object.__setattr__(self, "roles", tuple(self.roles))
        if self.github_toolsets is not None:
            object.__setattr__(self, "github_toolsets", tuple(self.github_toolsets))

    @property
    def has_explicit_permissions(self) -> bool:
        return self.permissions is not None

    @property
    def requires_membership_check(self) -> bool:
        if "all" in self.roles:
            return False
        return any(event not in UNGATED_EVENTS for event in self.triggers.events)

    @property
    def workflow_filename(self) -> str:
        if self.source_path:
            return os.path.basename(self.source_path)
        return f"{self.workflow_id}.md"


def _optional_str(frontmatter: Mapping[str, Any], key: str) -> str | None:
    value = frontmatter.get(key)
    if value is None:
        return None
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise TypeError(f"{key} must be a string (type={type(value).__name__})")
    text = str(value).strip()
    return text or None


def _parse_engine(raw: Any) -> tuple[str | None, Any]:
    if raw is None:
        return None, None
    if isinstance(raw, str):
        return raw.strip() or None, None
    if isinstance(raw, Mapping):
        engine_id = raw.get("id")
        if engine_id is not None and not isinstance(engine_id, str):
            raise TypeError(f"engine.id must be a string (type={type(engine_id).__name__})")
        return (engine_id or "").strip() or None, raw.get("concurrency")
    raise TypeError(f"engine must be a string or mapping (type={type(raw).__name__})")


def _parse_github_tool(tools: Any) -> tuple[tuple[str, ...] | None, bool]:
    if not isinstance(tools, Mapping):
        return None, True
    github = tools.get("github")
    if not isinstance(github, Mapping):
        return None, True
    toolsets_raw = github.get("toolsets", github.get("toolset"))
    toolsets: tuple[str, ...] | None = None
    if isinstance(toolsets_raw, str):
        toolsets = tuple(item.strip() for item in toolsets_raw.split(",") if item.strip())
    elif isinstance(toolsets_raw, list):
        toolsets = tuple(str(item).strip() for item in toolsets_raw if str(item).strip())
    read_only = github.get("read-only", True)
    if not isinstance(read_only, bool):
        raise TypeError(f"tools.github.read-only must be a boolean (type={type(read_only).__name__})")
    return toolsets, read_only


def _parse_roles(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return DEFAULT_ROLES
    if isinstance(raw, str):
        return (raw.strip(),)
    if isinstance(raw, list) and all(isinstance(item, str) for item in raw):
        return tuple(item.strip() for item in raw)
    raise TypeError(f"roles must be a string or list of strings (type={type(raw).__name__})")


def workflow_spec_from_document(
    document: FrontmatterDocument,
    *,
    path: str,
    source: str | None = None,
) -> WorkflowSpec:
    fm = document.frontmatter
    workflow_id = os.path.splitext(os.path.basename(path))[0]
    frontmatter_name = _optional_str(fm, "name")

    display_name = frontmatter_name
    if display_name is None:
        for line in document.markdown.splitlines():
            if line.startswith("# "):
                display_name = line[2:].strip() or None
                break
    if display_name is None:
        display_name = workflow_id

    triggers = parse_triggers(fm.get("on"))
    on_raw = fm.get("on") if isinstance(fm.get("on"), Mapping) else {}

    engine_id, engine_concurrency = _parse_engine(fm.get("engine", "copilot"))
    toolsets, read_only = _parse_github_tool(fm.get("tools"))

    permissions = None
    if "permissions" in fm:
        permissions = PermissionSet.parse(fm.get("permissions"), path="permissions")

    reaction = on_raw.get("reaction")
    if reaction is not None:
        reaction = str(reaction).strip()
    stop_time = on_raw.get("stop-after", fm.get("stop-time"))

    safe_outputs = fm.get("safe-outputs") or {}
    if not isinstance(safe_outputs, Mapping):
        raise TypeError(f"safe-outputs must be a mapping (type={type(safe_outputs).__name__})")
    jobs = fm.get("jobs") or {}
    if not isinstance(jobs, Mapping):
        raise TypeError(f"jobs must be a mapping (type={type(jobs).__name__})")

    timeout = fm.get("timeout-minutes", fm.get("timeout_minutes"))
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, int)):
        raise TypeError(f"timeout-minutes must be an int (type={type(timeout).__name__})")

    spec = WorkflowSpec(
        workflow_id=workflow_id,
        name=display_name,
        triggers=triggers,
        frontmatter_name=frontmatter_name,
        source=source or _optional_str(fm, "source"),
        tracker_id=_optional_str(fm, "tracker-id"),
        engine_id=engine_id,
        engine_concurrency=engine_concurrency,
        permissions=permissions,
        safe_outputs=safe_outputs,
        stop_time=str(stop_time).strip() if stop_time is not None else None,
        reaction=reaction,
        roles=_parse_roles(on_raw.get("roles", fm.get("roles"))),
        jobs=jobs,
        github_toolsets=toolsets,
        github_read_only=read_only,
        concurrency=fm.get("concurrency"),
        timeout_minutes=timeout,
        checkout=fm.get("checkout", True) is not False,
        markdown=document.markdown,
        source_path=path,
    )
    logger.debug(
        "Parsed workflow %s (events=%s, engine=%s, safe_outputs=%s)",
        spec.workflow_id,
        ",".join(spec.triggers.events) or "<none>",
        spec.engine_id,
        ",".join(spec.safe_outputs.keys()) or "<none>",
    )
    return spec


def load_workflow_spec(path: str) -> WorkflowSpec:
    return workflow_spec_from_document(read_frontmatter_file(path), path=path)
