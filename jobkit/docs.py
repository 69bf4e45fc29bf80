"""`jobkit` invariants and boundaries.

This module exists to make repository-wide refactors and boundary tests explicit.

Generic invariants:

1) `jobkit` must not import `agentic_workflows.*`.
2) `jobkit` provides value types for a compiled job graph (PermissionSet, JobSpec,
   JobGraph) and a kind authoring kit (JobKindRef/JobKindRegistry/ConfigNamespace).
3) Every value reachable from a `JobGraph` is immutable once constructed; permission
   sets render in lexically sorted order so equal sets always render identically.
4) `jobkit` does not define workflow conventions like:
   - which job is the "main" job, or which jobs gate it
   - what env variable prefixes or output type tags a kind uses
   - how a platform trigger maps onto concurrency groups

Application code supplies those conventions through the kind registry and its own
graph builder.
"""
