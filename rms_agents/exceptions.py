"""
Exception hierarchy for rms-agents.

Handler faults never surface as exceptions to publishers; these types cover
collaborator failures and configuration errors.
"""


class RMSAgentError(Exception):
    """Base class for all rms-agents errors."""


class ConfigError(RMSAgentError):
    """Raised when an agent configuration file is missing or malformed."""


class StoreError(RMSAgentError):
    """Raised by the issue store collaborator."""


class IssueNotFoundError(StoreError):
    """Raised when an issue id is not present in the store."""

    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(f"Issue not found: {issue_id}")


class VersionConflictError(StoreError):
    """Optimistic lock failure: the stored version moved on since it was read."""

    def __init__(self, issue_id: str, expected_version: int, actual_version: int):
        self.issue_id = issue_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock failed for {issue_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )
