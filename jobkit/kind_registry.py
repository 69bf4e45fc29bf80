from __future__ import annotations

import difflib
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from jobkit.job_types import JobSpec


class KindParser(Protocol):
    def __call__(self, raw: Mapping[str, Any], *, key: str) -> Any | None:
        ...


class KindBuilder(Protocol):
    def __call__(self, context: Any, config: Any) -> JobSpec:
        ...


@dataclass(frozen=True)
class JobKindRef:
    """A declarable job kind: the config key that enables it plus parse/build hooks.

    ``parse`` receives the whole declaration mapping and returns ``None`` when the
    kind is absent or disabled. ``build`` turns the parsed config into one job.
    """

    id: str
    job_name: str
    parse: KindParser
    build_job: KindBuilder
    doc: str | None = None
    source: str | None = None
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for attr in ("id", "job_name"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value.strip():
                raise TypeError(f"JobKindRef.{attr} must be a non-empty string")
            object.__setattr__(self, attr, value.strip())

        if self.doc is not None and (not isinstance(self.doc, str) or not self.doc.strip()):
            raise TypeError("JobKindRef.doc must be a non-empty string or None")
        if self.source is not None and (
            not isinstance(self.source, str) or not self.source.strip()
        ):
            raise TypeError("JobKindRef.source must be a non-empty string or None")
        if self.tags:
            object.__setattr__(
                self, "tags", tuple(str(tag).strip() for tag in self.tags if str(tag).strip())
            )

    @property
    def type_tag(self) -> str:
        """Output item type emitted by the agent for this kind (``close_issue``)."""

        return self.id.replace("-", "_")

    def build(self, context: Any, config: Any) -> JobSpec:
        job = self.build_job(context, config)
        if not isinstance(job, JobSpec):
            raise TypeError(
                f"Kind builder returned non-JobSpec (kind={self.id}, type={type(job).__name__})"
            )
        if job.name != self.job_name:
            raise ValueError(
                "Kind builder returned mismatched JobSpec.name: "
                f"expected={self.job_name} got={job.name}"
            )
        return job


@dataclass(frozen=True)
class JobKindRegistry:
    """Ordered registry of job kinds. Iteration order is declaration order."""

    _refs: tuple[JobKindRef, ...]

    @classmethod
    def from_refs(cls, refs: Iterable[JobKindRef]) -> "JobKindRegistry":
        entries: list[JobKindRef] = []
        seen_ids: set[str] = set()
        seen_jobs: set[str] = set()
        for ref in refs:
            if ref.id in seen_ids:
                raise ValueError(f"Duplicate job kind id: {ref.id}")
            if ref.job_name in seen_jobs:
                raise ValueError(f"Duplicate job name for kind {ref.id}: {ref.job_name}")
            seen_ids.add(ref.id)
            seen_jobs.add(ref.job_name)
            entries.append(ref)
        return cls(_refs=tuple(entries))

    def __iter__(self):
        return iter(self._refs)

    def __len__(self) -> int:
        return len(self._refs)

    def available(self) -> tuple[str, ...]:
        return tuple(sorted(ref.id for ref in self._refs))

    def describe(self) -> tuple[dict[str, Any], ...]:
        rows: list[dict[str, Any]] = []
        for ref in sorted(self._refs, key=lambda r: r.id):
            rows.append(
                {
                    "kind": ref.id,
                    "job": ref.job_name,
                    "doc": ref.doc,
                    "source": ref.source,
                    "tags": list(ref.tags),
                }
            )
        return tuple(rows)

    def get(self, kind_id: str) -> JobKindRef | None:
        key = (kind_id or "").strip()
        for ref in self._refs:
            if ref.id == key:
                return ref
        return None

    def resolve(self, kind_id: str) -> JobKindRef:
        if not isinstance(kind_id, str) or not kind_id.strip():
            raise ValueError("kind_id must be a non-empty string")
        ref = self.get(kind_id)
        if ref is not None:
            return ref

        hint = ""
        suggestions = self.suggest(kind_id)
        if suggestions:
            hint = f"; did you mean: {', '.join(suggestions)}"
        available = ", ".join(self.available()) or "<none>"
        raise ValueError(f"Unknown job kind: {kind_id} (available: {available}{hint})")

    def suggest(self, kind_id: str, *, limit: int = 3) -> tuple[str, ...]:
        key = (kind_id or "").strip()
        if not key:
            return ()
        return tuple(difflib.get_close_matches(key, list(self.available()), n=limit))
