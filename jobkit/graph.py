from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from jobkit.job_types import JobSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobGraph:
    """Ordered, validated collection of jobs.

    Order is the construction order and is preserved in the rendered output.
    """

    jobs: tuple[JobSpec, ...]

    @classmethod
    def from_jobs(cls, jobs: Iterable[JobSpec]) -> "JobGraph":
        graph = cls(jobs=tuple(jobs))
        graph.validate()
        return graph

    @property
    def job_names(self) -> tuple[str, ...]:
        return tuple(job.name for job in self.jobs)

    def get(self, name: str) -> JobSpec:
        for job in self.jobs:
            if job.name == name:
                return job
        available = ", ".join(self.job_names) or "<none>"
        raise KeyError(f"Unknown job: {name} (available: {available})")

    def has(self, name: str) -> bool:
        return any(job.name == name for job in self.jobs)

    def validate(self) -> None:
        duplicates: set[str] = set()
        seen: set[str] = set()
        for job in self.jobs:
            if job.name in seen:
                duplicates.add(job.name)
            seen.add(job.name)
        if duplicates:
            raise ValueError(f"Duplicate job name: {sorted(duplicates)[0]}")

        for job in self.jobs:
            missing = [need for need in job.needs if need not in seen]
            if missing:
                raise ValueError(
                    f"Job {job.name} needs unknown job(s): {', '.join(missing)} "
                    f"(available: {', '.join(self.job_names)})"
                )

        cycle = self._find_cycle()
        if cycle:
            raise ValueError("Job dependency cycle: " + " -> ".join(cycle))

    def _find_cycle(self) -> list[str]:
        by_name = {job.name: job for job in self.jobs}
        state: dict[str, int] = {}
        stack: list[str] = []

        def visit(name: str) -> list[str]:
            state[name] = 1
            stack.append(name)
            for need in by_name[name].needs:
                if state.get(need) == 1:
                    return [*stack[stack.index(need) :], need]
                if need not in state:
                    found = visit(need)
                    if found:
                        return found
            stack.pop()
            state[name] = 2
            return []

        for job in self.jobs:
            if job.name not in state:
                found = visit(job.name)
                if found:
                    return found
        return []

    def ancestors(self, name: str) -> tuple[str, ...]:
        """All jobs reachable through ``needs`` edges, nearest first."""

        by_name = {job.name: job for job in self.jobs}
        ordered: list[str] = []
        queue = list(by_name[name].needs)
        while queue:
            current = queue.pop(0)
            if current in ordered:
                continue
            ordered.append(current)
            queue.extend(by_name[current].needs)
        return tuple(ordered)

    def require_ancestor(self, names: Iterable[str], ancestor: str) -> None:
        offenders = [name for name in names if ancestor not in self.ancestors(name)]
        if offenders:
            raise ValueError(
                f"Jobs must depend on {ancestor}: {', '.join(offenders)}"
            )
        logger.debug("Verified %s is an ancestor of all requested jobs", ancestor)
