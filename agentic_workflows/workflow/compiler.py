"""Compile a workflow markdown file into its ``.lock.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from jobkit.graph import JobGraph
from jobkit.job_types import ConcurrencySpec

from agentic_workflows.workflow.concurrency import workflow_concurrency
from agentic_workflows.workflow.config import CompilerConfig
from agentic_workflows.workflow.jobs import JobGraphBuilder
from agentic_workflows.workflow.spec import WorkflowSpec, load_workflow_spec

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock.yml"

# SafeDumper quotes `on` because YAML 1.1 resolves it as a boolean; Actions expects it bare.
_QUOTED_ON_KEY = re.compile(r"^'on':", re.MULTILINE)


class _LockDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings as literal blocks and null as empty."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> Any:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


def _represent_none(dumper: yaml.SafeDumper, _data: None) -> Any:
    return dumper.represent_scalar("tag:yaml.org,2002:null", "")


_LockDumper.add_representer(str, _represent_str)
_LockDumper.add_representer(type(None), _represent_none)


def lock_path_for(markdown_path: str | Path) -> Path:
    path = Path(markdown_path)
    return path.with_name(path.stem + LOCK_SUFFIX)


def _header(spec: WorkflowSpec, config: CompilerConfig) -> str:
    lines = [
        f"# This file was automatically generated by aw-compiler ({config.version}). DO NOT EDIT.",
        "#",
        f"# To update this file, edit {spec.workflow_filename} and recompile:",
        f"#   aw-compiler compile {spec.workflow_filename}",
    ]
    if spec.source:
        lines.append("#")
        lines.append(f"# Source: {spec.source}")
    return "\n".join(lines) + "\n#\n"


def render_lock_yaml(spec: WorkflowSpec, graph: JobGraph, config: CompilerConfig) -> str:
    """Serialize a job graph as a GitHub Actions workflow document."""

    concurrency = workflow_concurrency(spec, spec.triggers.is_command)
    document: dict[str, Any] = {
        "name": spec.name,
        "on": spec.triggers.render(),
        "permissions": {},
        "concurrency": concurrency.to_yaml_value()
        if isinstance(concurrency, ConcurrencySpec)
        else concurrency,
        "run-name": spec.name,
        "jobs": {job.name: job.to_yaml_value() for job in graph.jobs},
    }
    body = yaml.dump(
        document,
        Dumper=_LockDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=1000,
    )
    body = _QUOTED_ON_KEY.sub("on:", body, count=1)
    return _header(spec, config) + "\n" + body


@dataclass(frozen=True)
class CompileResult:
    spec: WorkflowSpec
    graph: JobGraph
    lock_path: Path
    content: str
    written: bool = False


class WorkflowCompiler:
    def __init__(self, config: CompilerConfig | None = None, *, builder: JobGraphBuilder | None = None) -> None:
        self.config = config or CompilerConfig()
        self.builder = builder or JobGraphBuilder(self.config)

    def compile_spec(self, spec: WorkflowSpec) -> tuple[JobGraph, str]:
        graph = self.builder.build(spec)
        return graph, render_lock_yaml(spec, graph, self.config)

    def compile_file(self, markdown_path: str | Path, *, write: bool = True) -> CompileResult:
        path = Path(markdown_path)
        spec = load_workflow_spec(str(path))
        graph, content = self.compile_spec(spec)
        lock_path = lock_path_for(path)

        written = False
        if write:
            tmp_path = lock_path.with_name(lock_path.name + ".tmp")
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, lock_path)
            written = True
            logger.info("Wrote %s (%d jobs)", lock_path, len(graph.jobs))
        return CompileResult(spec=spec, graph=graph, lock_path=lock_path, content=content, written=written)


def find_workflow_files(directory: str | Path) -> list[Path]:
    """Workflow sources under a directory, sorted; README files are skipped."""

    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Workflows directory not found: {root}")
    return sorted(
        path
        for path in root.glob("*.md")
        if path.is_file() and path.name.lower() != "readme.md"
    )
