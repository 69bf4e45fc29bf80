"""Safe-output kinds: minimally-permissioned jobs that act on the agent's output.

Each kind module exports ``__all_kinds__`` (a list of `jobkit.JobKindRef`);
`catalog.get_safe_output_registry()` collects them.
"""
