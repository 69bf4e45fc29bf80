"""Execution engines as opaque step producers.

The agent-job builder only calls the three `Engine` methods; how an engine
installs its CLI or what flags it passes is its own business.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Iterable, Protocol

from jobkit.job_types import Step

if TYPE_CHECKING:
    from agentic_workflows.workflow.spec import WorkflowSpec

PROMPT_PATH = "/tmp/gh-aw/aw-prompts/prompt.txt"
MCP_CONFIG_PATH = "/tmp/gh-aw/mcp-config/mcp-servers.json"
SAFE_OUTPUTS_PATH = "/tmp/gh-aw/safeoutputs/outputs.jsonl"


class Engine(Protocol):
    id: str

    def installation_steps(self) -> list[Step]:
        ...

    def execution_steps(self, spec: "WorkflowSpec") -> list[Step]:
        ...

    def render_mcp_config(self, toolsets: Iterable[str], *, read_only: bool) -> Step:
        ...


@dataclass(frozen=True)
class CommandEngine:
    """An engine driven by a single CLI installed from npm."""

    id: str
    display_name: str
    package: str
    command: str
    secret_env: tuple[str, ...] = ()
    extra_args: tuple[str, ...] = field(default_factory=tuple)

    def installation_steps(self) -> list[Step]:
        return [
            {
                "name": "Setup Node.js",
                "uses": "actions/setup-node@v4",
                "with": {"node-version": "24"},
            },
            {
                "name": f"Install {self.display_name}",
                "run": f"npm install -g {self.package}",
            },
        ]

    def execution_steps(self, spec: "WorkflowSpec") -> list[Step]:
        command = " ".join([self.command, *self.extra_args, f'"$(cat {PROMPT_PATH})"'])
        env: dict[str, Any] = {
            "GH_AW_MCP_CONFIG": MCP_CONFIG_PATH,
            "GH_AW_SAFE_OUTPUTS": SAFE_OUTPUTS_PATH,
        }
        for name in self.secret_env:
            env[name] = "${{ secrets." + name + " }}"
        step: Step = {
            "name": f"Execute {self.display_name}",
            "id": "agentic_execution",
            "run": command,
            "env": env,
        }
        if spec.timeout_minutes is not None:
            step["timeout-minutes"] = spec.timeout_minutes
        return [step]

    def render_mcp_config(self, toolsets: Iterable[str], *, read_only: bool) -> Step:
        selected = list(toolsets)
        server: dict[str, Any] = {
            "type": "stdio",
            "command": "github-mcp-server",
            "args": ["stdio"],
            "env": {
                "GITHUB_PERSONAL_ACCESS_TOKEN": "${GITHUB_MCP_SERVER_TOKEN}",
                "GITHUB_TOOLSETS": ",".join(selected),
                "GITHUB_READ_ONLY": "1" if read_only else "0",
            },
        }
        payload = json.dumps({"mcpServers": {"github": server}}, indent=2, sort_keys=True)
        return {
            "name": "Setup MCPs",
            "env": {"GITHUB_MCP_SERVER_TOKEN": "${{ secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"},
            "run": "\n".join(
                [
                    f"mkdir -p {MCP_CONFIG_PATH.rsplit('/', 1)[0]}",
                    f"cat > {MCP_CONFIG_PATH} << 'EOF'",
                    payload,
                    "EOF",
                ]
            ),
        }


@dataclass(frozen=True)
class EngineRegistry:
    _engines: tuple[Engine, ...]

    def get(self, engine_id: str | None) -> Engine | None:
        key = (engine_id or "").strip()
        for engine in self._engines:
            if engine.id == key:
                return engine
        return None

    def resolve(self, engine_id: str | None) -> Engine:
        engine = self.get(engine_id)
        if engine is None:
            available = ", ".join(self.available()) or "<none>"
            raise ValueError(f"Unknown engine: {engine_id} (available: {available})")
        return engine

    def available(self) -> tuple[str, ...]:
        return tuple(sorted(engine.id for engine in self._engines))


@lru_cache(maxsize=1)
def default_engine_registry() -> EngineRegistry:
    return EngineRegistry(
        _engines=(
            CommandEngine(
                id="copilot",
                display_name="GitHub Copilot CLI",
                package="@github/copilot",
                command="copilot",
                secret_env=("COPILOT_GITHUB_TOKEN",),
                extra_args=("--add-dir", "/tmp/gh-aw/", "--prompt"),
            ),
            CommandEngine(
                id="claude",
                display_name="Claude Code",
                package="@anthropic-ai/claude-code",
                command="claude",
                secret_env=("ANTHROPIC_API_KEY",),
                extra_args=("--print", "--mcp-config", MCP_CONFIG_PATH),
            ),
            CommandEngine(
                id="codex",
                display_name="Codex",
                package="@openai/codex",
                command="codex",
                secret_env=("OPENAI_API_KEY",),
                extra_args=("exec", "--full-auto"),
            ),
        )
    )
