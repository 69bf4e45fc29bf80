"""Compiler from agentic workflow markdown to GitHub Actions lock files.

Layering: `foundation` (I/O helpers) <- `workflow` (spec, graph builder, compiler)
<- `safe_outputs` (per-kind job builders). The generic job/permission kernel lives
in the separate `jobkit` package.
"""
