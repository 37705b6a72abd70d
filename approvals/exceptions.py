class WorkflowStateError(ValueError):
    """Acting on a step that is not current, already resolved, or on a finished workflow."""


class NoApprovalPolicy(ValueError):
    """No active approval rule covers the given category and amount."""
