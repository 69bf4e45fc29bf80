from __future__ import annotations


class WorkflowValidationError(ValueError):
    """A workflow declaration that must fail the whole compile."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class JobBuildError(ValueError):
    """A malformed job fragment (custom steps or outputs) found while building."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field
