from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger("agentic_workflows")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aw-compiler", add_help=True)
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    parser.add_argument("--config", default=None, help="Path to an aw-compiler YAML config")
    sub = parser.add_subparsers(dest="command", required=True)

    compile_cmd = sub.add_parser("compile", help="Compile workflow markdown into .lock.yml files")
    compile_cmd.add_argument(
        "workflows",
        nargs="*",
        help="Workflow .md files (default: every workflow in the workflows directory)",
    )
    compile_cmd.add_argument("--action-mode", choices=("dev", "release"), default=None)
    compile_cmd.add_argument("--version", dest="compiler_version", default=None)
    compile_cmd.add_argument("--trial", action="store_true", help="Compile for a trial run")
    compile_cmd.add_argument(
        "--no-emit", action="store_true", help="Validate and build without writing lock files"
    )

    sub.add_parser("list-safe-outputs", help="List available safe-output kinds")
    sub.add_parser("list-toolsets", help="List GitHub MCP toolsets and their permissions")

    return parser


def _load_config(args: argparse.Namespace):
    """Return ``(config, repo_root)``; repo_root is None outside a repository."""

    from agentic_workflows.foundation.config_io import find_repo_root
    from agentic_workflows.workflow.config import CompilerConfig, load_compiler_config

    try:
        config, meta = load_compiler_config(config_path=args.config)
    except FileNotFoundError as exc:
        if args.config:
            raise
        logger.debug("No repository config found (%s); using defaults", exc)
        return CompilerConfig(), None
    logger.debug("Loaded compiler config (mode=%s, paths=%s)", meta.get("mode"), meta.get("paths"))

    repo_root = meta.get("repo_root")
    if repo_root is None:
        try:
            repo_root = find_repo_root()
        except FileNotFoundError:
            repo_root = None
    return config, repo_root


def _workflows_dir(config, repo_root: str | None) -> Path:
    # Relative directories are anchored at the repository root, not the cwd.
    path = Path(config.workflows_dir)
    if path.is_absolute() or repo_root is None:
        return path
    return Path(repo_root) / path


def _compile(args: argparse.Namespace) -> int:
    from agentic_workflows.workflow.compiler import WorkflowCompiler, find_workflow_files
    from agentic_workflows.workflow.errors import JobBuildError, WorkflowValidationError

    config, repo_root = _load_config(args)
    config = config.with_overrides(
        action_mode=args.action_mode,
        version=args.compiler_version,
        trial_mode=True if args.trial else None,
    )
    paths = list(args.workflows)
    if not paths:
        try:
            paths = [str(p) for p in find_workflow_files(_workflows_dir(config, repo_root))]
        except FileNotFoundError as exc:
            logger.error("%s", exc)
            return 1
    if not paths:
        logger.warning("No workflow files found in %s", _workflows_dir(config, repo_root))
        return 0

    compiler = WorkflowCompiler(config)
    failures = 0
    for path in paths:
        try:
            result = compiler.compile_file(path, write=not args.no_emit)
        except (WorkflowValidationError, JobBuildError, ValueError, TypeError, OSError) as exc:
            failures += 1
            logger.error("%s: %s", path, exc)
            continue
        logger.info("Compiled %s -> %s", path, result.lock_path)

    if failures:
        logger.error("%d of %d workflow(s) failed to compile", failures, len(paths))
        return 1
    return 0


def _list_safe_outputs() -> int:
    from agentic_workflows.safe_outputs.catalog import get_safe_output_registry

    for row in get_safe_output_registry().describe():
        tags = f" [{', '.join(row['tags'])}]" if row["tags"] else ""
        print(f"{row['kind']:<36} {row['job']:<32} {row['doc'] or ''}{tags}")
    return 0


def _list_toolsets() -> int:
    from agentic_workflows.workflow.toolsets import ToolsetInferenceEngine

    engine = ToolsetInferenceEngine()
    defaults = set(engine.default_toolsets)
    for name in engine.all_toolsets():
        definition = engine.get_toolset_permissions(name)
        if definition is None:
            continue
        reads = ",".join(definition.read_scopes) or "-"
        writes = ",".join(definition.write_scopes) or "-"
        marker = "*" if name in defaults else " "
        print(f"{marker} {name:<22} read={reads:<30} write={writes}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)

    from agentic_workflows.foundation.logging_utils import setup_compiler_logger

    setup_compiler_logger(verbose=args.verbose, log_file=args.log_file)

    if args.command == "compile":
        return _compile(args)

    if args.command == "list-safe-outputs":
        return _list_safe_outputs()

    if args.command == "list-toolsets":
        return _list_toolsets()

    raise AssertionError(f"Unhandled command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
