"""Reusable job-graph kernel (permission lattice, job values, kind registry).

This package is intentionally independent of `agentic_workflows.*`. Platform-specific
conventions (job names, env prefixes, trigger handling) must live in the consuming
application.
"""

from jobkit.config_namespace import ConfigNamespace, is_expression
from jobkit.graph import JobGraph
from jobkit.job_types import ConcurrencySpec, JobSpec, Step
from jobkit.kind_registry import JobKindRef, JobKindRegistry, KindBuilder, KindParser
from jobkit.permissions import (
    ALL_SCOPES,
    ALLOWED_LEVELS,
    ALLOWED_SHORTHANDS,
    PermissionLevel,
    PermissionScope,
    PermissionSet,
    PermissionsBuilder,
    contents_read,
    contents_read_with,
    merge_permissions,
)

__all__ = [
    "ALLOWED_LEVELS",
    "ALLOWED_SHORTHANDS",
    "ALL_SCOPES",
    "ConcurrencySpec",
    "ConfigNamespace",
    "JobGraph",
    "JobKindRef",
    "JobKindRegistry",
    "JobSpec",
    "KindBuilder",
    "KindParser",
    "PermissionLevel",
    "PermissionScope",
    "PermissionSet",
    "PermissionsBuilder",
    "Step",
    "contents_read",
    "contents_read_with",
    "is_expression",
    "merge_permissions",
]
