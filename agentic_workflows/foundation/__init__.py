"""Leaf utilities (config files, frontmatter, logging).

Nothing in here may import `agentic_workflows.workflow` or
`agentic_workflows.safe_outputs`.
"""
