"""
Exceptions raised by sympaging.
"""


class SympagingError(Exception):
    """Base class for all sympaging errors."""


class ConfigError(SympagingError):
    """Invalid configuration value."""


class BranchError(SympagingError):
    """A failure that ends processing of one branch.

    The branch key is attached by the pipeline when the error crosses the
    branch boundary, so lower layers can raise without knowing it.
    """

    def __init__(self, message: str, branch: str | None = None):
        super().__init__(message)
        self.message = message
        self.branch = branch

    def __str__(self) -> str:
        if self.branch:
            return f"[{self.branch}] {self.message}"
        return self.message


class AuthenticationError(BranchError):
    """Login against ILSWS failed."""


class PullListError(BranchError):
    """The hold pull list could not be fetched or parsed."""


class EnrichmentError(BranchError):
    """A hold could not be resolved and the record policy is 'abort'."""


class MissingReferenceError(SympagingError):
    """An ILSWS record lacks the reference needed for the next lookup."""

    def __init__(self, resource: str, key: str, reference: str):
        self.resource = resource
        self.key = key
        self.reference = reference
        super().__init__(f"{resource} {key} has no {reference} reference")


class ReportError(BranchError):
    """A branch's report files could not be written."""
