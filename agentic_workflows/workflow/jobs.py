"""Job graph construction: pre-activation, activation, agent and safe-output jobs.

The four roles are wired structurally:

    pre_activation -> activation -> agent -> <safe-output jobs>

Pre-activation and activation are optional. Every safe-output job needs the
agent job and receives only the permissions its own kind requires.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from jobkit.graph import JobGraph
from jobkit.job_types import JobSpec, Step
from jobkit.permissions import PermissionSet, PermissionsBuilder

from agentic_workflows.safe_outputs.catalog import build_safe_output_jobs, safe_output_context
from agentic_workflows.safe_outputs.common import (
    AGENT_OUTPUT_ARTIFACT,
    AGENT_OUTPUT_DIR,
    MAIN_JOB_NAME,
    script_for,
    setup_steps,
)
from agentic_workflows.workflow import expressions
from agentic_workflows.workflow.concurrency import job_concurrency
from agentic_workflows.workflow.config import CompilerConfig
from agentic_workflows.workflow.engines import (
    PROMPT_PATH,
    SAFE_OUTPUTS_PATH,
    Engine,
    EngineRegistry,
    default_engine_registry,
)
from agentic_workflows.workflow.errors import JobBuildError, WorkflowValidationError
from agentic_workflows.workflow.spec import WorkflowSpec, thaw
from agentic_workflows.workflow.toolsets import ToolsetInferenceEngine

logger = logging.getLogger(__name__)

PRE_ACTIVATION_JOB = "pre_activation"
ACTIVATION_JOB = "activation"
CUSTOM_PRE_ACTIVATION_KEYS: tuple[str, ...] = ("pre-activation", "pre_activation")
GITHUB_SCRIPT = "actions/github-script@v8"


def _script_step(name: str, step_id: str, script_name: str, env: Mapping[str, str]) -> Step:
    return {
        "name": name,
        "id": step_id,
        "uses": GITHUB_SCRIPT,
        "env": dict(env),
        "with": {"script": script_for(script_name)},
    }


def custom_pre_activation(spec: WorkflowSpec) -> tuple[list[Step], dict[str, str]]:
    """User-supplied ``jobs.pre-activation`` steps and outputs.

    Raises JobBuildError when ``steps`` is not a list or ``outputs`` not a mapping.
    """

    for key in CUSTOM_PRE_ACTIVATION_KEYS:
        if key in spec.jobs:
            break
    else:
        return [], {}

    path = f"jobs.{key}"
    fragment = spec.jobs[key]
    if fragment is None:
        return [], {}
    if not isinstance(fragment, Mapping):
        raise JobBuildError(
            f"{path} must be a mapping (type={type(fragment).__name__})", field=path
        )

    steps_raw = fragment.get("steps")
    steps: list[Step] = []
    if steps_raw is not None:
        if not isinstance(steps_raw, (list, tuple)):
            raise JobBuildError(
                f"{path}.steps must be an array (type={type(steps_raw).__name__})",
                field=f"{path}.steps",
            )
        for idx, step in enumerate(steps_raw):
            if not isinstance(step, Mapping):
                raise JobBuildError(
                    f"{path}.steps[{idx}] must be a mapping (type={type(step).__name__})",
                    field=f"{path}.steps",
                )
            steps.append(thaw(step))

    outputs_raw = fragment.get("outputs")
    outputs: dict[str, str] = {}
    if outputs_raw is not None:
        if not isinstance(outputs_raw, Mapping):
            raise JobBuildError(
                f"{path}.outputs must be a mapping (type={type(outputs_raw).__name__})",
                field=f"{path}.outputs",
            )
        outputs = {str(k): str(v) for k, v in outputs_raw.items()}

    return steps, outputs


def has_reaction(spec: WorkflowSpec) -> bool:
    return bool(spec.reaction) and spec.reaction != "none"


class JobGraphBuilder:
    """Builds the ordered job graph for one `WorkflowSpec`.

    Holds only immutable collaborators, so one builder may compile many specs
    concurrently.
    """

    def __init__(
        self,
        config: CompilerConfig | None = None,
        *,
        engines: EngineRegistry | None = None,
        toolsets: ToolsetInferenceEngine | None = None,
    ) -> None:
        self.config = config or CompilerConfig()
        self.engines = engines or default_engine_registry()
        self.toolsets = toolsets or ToolsetInferenceEngine()

    # ---- permissions ------------------------------------------------------

    def main_job_permissions(self, spec: WorkflowSpec) -> PermissionSet:
        """Explicit declarations win as written; otherwise dev mode adds ``contents: read``."""

        if spec.permissions is not None:
            return spec.permissions
        if self.config.is_release:
            return PermissionSet.empty()
        return PermissionsBuilder().set("contents", "read").build()

    def _setup_permissions(self) -> PermissionsBuilder:
        builder = PermissionsBuilder()
        if not self.config.is_release:
            builder.set("contents", "read")
        return builder

    # ---- pre-activation ---------------------------------------------------

    def needs_pre_activation(self, spec: WorkflowSpec) -> bool:
        custom_steps, custom_outputs = custom_pre_activation(spec)
        return bool(
            spec.requires_membership_check
            or spec.stop_time
            or has_reaction(spec)
            or custom_steps
            or custom_outputs
        )

    def build_pre_activation_job(self, spec: WorkflowSpec) -> JobSpec | None:
        custom_steps, custom_outputs = custom_pre_activation(spec)
        if not self.needs_pre_activation(spec):
            return None

        steps: list[Step] = setup_steps(self.config)
        steps.extend(custom_steps)

        checks: list[str] = []
        if spec.requires_membership_check:
            steps.append(
                _script_step(
                    "Check team membership for workflow",
                    "check_membership",
                    "check_membership",
                    {"GH_AW_REQUIRED_ROLES": ",".join(spec.roles)},
                )
            )
            checks.append("steps.check_membership.outputs.is_team_member == 'true'")

        if spec.stop_time:
            steps.append(
                _script_step(
                    "Check stop-time limit",
                    "check_stop_time",
                    "check_stop_time",
                    {"GH_AW_STOP_TIME": spec.stop_time, "GH_AW_WORKFLOW_NAME": spec.name},
                )
            )
            checks.append("steps.check_stop_time.outputs.stop_time_ok == 'true'")

        permissions = self._setup_permissions()
        if has_reaction(spec):
            steps.append(
                _script_step(
                    f"Add {spec.reaction} reaction",
                    "react",
                    "add_reaction",
                    {"GH_AW_REACTION": str(spec.reaction)},
                )
            )
            for scope in ("issues", "pull-requests", "discussions"):
                permissions.set(scope, "write")

        outputs = {"activated": expressions.wrap(expressions.and_(*checks)) if checks else "true"}
        for key, value in custom_outputs.items():
            outputs.setdefault(key, value)

        logger.debug("Built pre-activation job (checks=%d, custom_steps=%d)", len(checks), len(custom_steps))
        return JobSpec(
            name=PRE_ACTIVATION_JOB,
            permissions=permissions.build(),
            steps=tuple(steps),
            outputs=outputs,
            runs_on=self.config.runs_on,
        )

    # ---- activation -------------------------------------------------------

    def build_activation_job(self, spec: WorkflowSpec, *, pre_activation: bool) -> JobSpec | None:
        if not (pre_activation or spec.triggers.is_workflow_run or self.config.check_lock_freshness):
            return None

        steps: list[Step] = setup_steps(self.config)
        permissions = self._setup_permissions()

        if self.config.check_lock_freshness:
            steps.append(
                _script_step(
                    "Check workflow file timestamps",
                    "check_workflow_timestamp",
                    "check_workflow_timestamp_api",
                    {"GH_AW_WORKFLOW_FILE": f"{spec.workflow_id}.lock.yml"},
                )
            )
            permissions.set("contents", "read")

        if spec.triggers.is_workflow_run:
            step = _script_step(
                "Validate workflow_run repository",
                "check_workflow_run_repository",
                "check_workflow_run_repository",
                {"GH_AW_EXPECTED_REPOSITORY": "${{ github.repository }}"},
            )
            step["if"] = "github.event_name == 'workflow_run'"
            steps.append(step)

        condition = None
        needs: tuple[str, ...] = ()
        if pre_activation:
            needs = (PRE_ACTIVATION_JOB,)
            condition = expressions.activated_condition(PRE_ACTIVATION_JOB)

        return JobSpec(
            name=ACTIVATION_JOB,
            needs=needs,
            permissions=permissions.build(),
            condition=condition,
            steps=tuple(steps),
            runs_on=self.config.runs_on,
        )

    # ---- agent ------------------------------------------------------------

    def _engine(self, spec: WorkflowSpec) -> Engine:
        try:
            return self.engines.resolve(spec.engine_id)
        except ValueError as exc:
            raise WorkflowValidationError(str(exc), field="engine") from exc

    def inferred_toolsets(self, spec: WorkflowSpec, permissions: PermissionSet) -> list[str]:
        if spec.github_toolsets is not None:
            return self.toolsets.infer_from_toolsets(
                permissions, spec.github_toolsets, read_only=spec.github_read_only
            )
        return self.toolsets.infer_from_defaults(permissions, read_only=spec.github_read_only)

    def build_main_job(self, spec: WorkflowSpec, *, needs: tuple[str, ...] = ()) -> JobSpec:
        engine = self._engine(spec)
        permissions = self.main_job_permissions(spec)
        toolsets = self.inferred_toolsets(spec, permissions)

        steps: list[Step] = []
        if spec.checkout:
            steps.append(
                {
                    "name": "Checkout repository",
                    "uses": "actions/checkout@v5",
                    "with": {"persist-credentials": False},
                }
            )
        steps.extend(setup_steps(self.config, checked_out=spec.checkout))
        steps.append(
            {
                "name": "Create prompt",
                "run": "\n".join(
                    [
                        f"mkdir -p {PROMPT_PATH.rsplit('/', 1)[0]}",
                        f"cat > {PROMPT_PATH} << 'GH_AW_PROMPT_EOF'",
                        spec.markdown.strip(),
                        "GH_AW_PROMPT_EOF",
                    ]
                ),
            }
        )
        steps.extend(engine.installation_steps())
        steps.append(engine.render_mcp_config(toolsets, read_only=spec.github_read_only))
        steps.extend(engine.execution_steps(spec))
        steps.append(
            {
                "name": "Collect agent output",
                "id": "collect_output",
                "uses": GITHUB_SCRIPT,
                "env": {"GH_AW_SAFE_OUTPUTS": SAFE_OUTPUTS_PATH},
                "with": {"script": script_for("collect_ndjson_output")},
            }
        )
        if spec.safe_outputs:
            steps.append(
                {
                    "name": "Upload agent output",
                    "if": "always()",
                    "uses": "actions/upload-artifact@v4",
                    "with": {
                        "name": AGENT_OUTPUT_ARTIFACT,
                        "path": AGENT_OUTPUT_DIR + AGENT_OUTPUT_ARTIFACT,
                        "if-no-files-found": "warn",
                    },
                }
            )

        env: dict[str, Any] = {
            "GH_AW_SAFE_OUTPUTS": SAFE_OUTPUTS_PATH,
            "GH_AW_AGENT_OUTPUT": AGENT_OUTPUT_DIR + AGENT_OUTPUT_ARTIFACT,
        }
        logger.debug(
            "Built agent job (engine=%s, permissions=%s, toolsets=%s)",
            engine.id,
            permissions.render(),
            ",".join(toolsets) or "<none>",
        )
        return JobSpec(
            name=MAIN_JOB_NAME,
            needs=needs,
            permissions=permissions,
            env=env,
            steps=tuple(steps),
            outputs={
                "output": expressions.step_output("collect_output", "output"),
                "output_types": expressions.step_output("collect_output", "output_types"),
            },
            runs_on=self.config.runs_on,
            concurrency=job_concurrency(spec),
            timeout_minutes=spec.timeout_minutes,
        )

    # ---- graph ------------------------------------------------------------

    def build_jobs(self, spec: WorkflowSpec) -> list[JobSpec]:
        jobs: list[JobSpec] = []

        pre_activation = self.build_pre_activation_job(spec)
        if pre_activation is not None:
            jobs.append(pre_activation)

        activation = self.build_activation_job(spec, pre_activation=pre_activation is not None)
        if activation is not None:
            jobs.append(activation)

        main_needs: tuple[str, ...] = ()
        if activation is not None:
            main_needs = (ACTIVATION_JOB,)
        elif pre_activation is not None:
            main_needs = (PRE_ACTIVATION_JOB,)
        jobs.append(self.build_main_job(spec, needs=main_needs))

        ctx = safe_output_context(spec, self.config, main_job=MAIN_JOB_NAME)
        jobs.extend(build_safe_output_jobs(ctx))
        return jobs

    def build(self, spec: WorkflowSpec) -> JobGraph:
        jobs = self.build_jobs(spec)
        graph = JobGraph.from_jobs(jobs)
        names = [job.name for job in jobs]
        if MAIN_JOB_NAME not in names:
            raise JobBuildError(f"Job graph has no {MAIN_JOB_NAME} job", field="jobs")
        # Everything built after the agent job consumes its output.
        graph.require_ancestor(names[names.index(MAIN_JOB_NAME) + 1 :], MAIN_JOB_NAME)
        logger.info("Built %d jobs for %s: %s", len(jobs), spec.workflow_id, ", ".join(graph.job_names))
        return graph
