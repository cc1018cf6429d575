# nexus_stream_toolkit/exceptions.py
from typing import Optional


class NexusToolkitError(Exception):
    """Base exception class for the nexus_stream_toolkit library."""

    pass


class ConfigurationError(NexusToolkitError):
    """Exception raised for configuration errors (e.g., invalid settings)."""

    pass


class MissingCredentialError(ConfigurationError):
    """Raised before any network call when a provider has no API key configured."""

    def __init__(self, provider: str, message: Optional[str] = None) -> None:
        self.provider = provider
        super().__init__(
            message
            or f"Missing API Key for {provider}. Please configure it in settings."
        )


class ProviderError(NexusToolkitError):
    """Exception raised for errors originating from a provider."""

    pass


class ProviderHTTPError(ProviderError):
    """A provider answered with a non-2xx HTTP status."""

    def __init__(self, status: int, body: str, provider: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        self.provider = provider
        prefix = f"{provider} API Error" if provider else "API Error"
        super().__init__(f"{prefix}: {status} - {body}")


class AbortedError(NexusToolkitError):
    """The caller cancelled the request.

    Deliberately not a :class:`ProviderError`: a stop requested by the user is
    not a provider failure and partial output must be kept.
    """

    def __init__(self, message: str = "Aborted") -> None:
        super().__init__(message)


class ToolError(NexusToolkitError):
    """Exception raised for errors during tool execution."""

    pass


class ToolExecutionError(ToolError):
    """A tool failed while running. Downgraded to content by the orchestrator."""

    pass


class ToolLoopExceededError(NexusToolkitError):
    """The model kept requesting tools past the allowed number of rounds."""

    def __init__(self, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(
            f"Tool call loop exceeded {max_rounds} rounds without a final answer."
        )


class UnsupportedFeatureError(NexusToolkitError):
    """Exception raised when a provider does not support a requested feature."""

    pass
