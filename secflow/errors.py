"""
Exceptions raised across the secflow pipeline.

Per-message errors (decode, clone URL, existence check, publish) are isolated to the message that caused
them. Setup errors (bus connection, initial subscriptions, configuration) are fatal to the process.
"""


class SecflowError(Exception):
    """Base class for all secflow errors."""


class ConfigurationError(SecflowError):
    """A required configuration value is missing or malformed."""


class RecordDecodeError(SecflowError):
    """An inbound payload could not be decoded into a RepositoryRecord."""


class UnrecognizedCloneURLError(SecflowError):
    """The owner could not be derived from a repository clone URL."""

    def __init__(self, clone_url: str, reason: str):
        self.clone_url = clone_url
        self.reason = reason
        super().__init__(f"unable to parse owner from URL {clone_url!r}: {reason}")


class ExistenceCheckError(SecflowError):
    """The hosting API could not answer whether a path exists (auth, network, rate limit, 5xx)."""

    def __init__(self, owner: str, repo_name: str, path: str, message: str):
        self.owner = owner
        self.repo_name = repo_name
        self.path = path
        super().__init__(f"failed to check for {path} in {owner}/{repo_name}: {message}")


class ExistenceCheckCancelledError(ExistenceCheckError):
    """The existence check was abandoned because shutdown began while it was in flight."""


class RoutePublishError(SecflowError):
    """Publishing a routed message to its outbound subject failed."""

    def __init__(self, subject: str, repo_name: str, message: str):
        self.subject = subject
        self.repo_name = repo_name
        super().__init__(f"failed to publish {repo_name} to {subject}: {message}")


class BusError(SecflowError):
    """Base class for message bus failures."""


class BusConnectionError(BusError):
    """Connecting to the message bus failed."""


class BusPublishError(BusError):
    """The message bus rejected a publish."""


class BusTimeoutError(BusError):
    """No message arrived on a pull subscription before the timeout."""


class PipelineStateError(SecflowError):
    """The pipeline was asked to make a transition its current state does not allow."""


class OrganizationScanError(SecflowError):
    """Listing the repositories of an organization failed."""
