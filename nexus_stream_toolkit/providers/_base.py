"""BaseProvider ABC and the normalised events adapters stream back."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncGenerator,
    ClassVar,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from ..config import CredentialProvider
from ..exceptions import MissingCredentialError, UnsupportedFeatureError
from ..models import (
    GeneratedImage,
    GroundingMetadata,
    ProviderKind,
    StreamRequest,
    ToolCall,
    ToolResult,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Normalised events yielded by ProviderSession.send / send_tool_results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextDelta:
    """An incremental piece of model text."""

    text: str


@dataclass(frozen=True)
class GroundingUpdate:
    """Search grounding attached to the response. Never rendered as text."""

    metadata: GroundingMetadata


@dataclass(frozen=True)
class ToolCallsRequested:
    """The model asked for one or more tool calls, in declaration order.

    The adapter stops producing events after this one; resolving the calls and
    continuing the conversation is the orchestrator's job.
    """

    calls: Tuple[ToolCall, ...] = field(default_factory=tuple)


AdapterEvent = Union[TextDelta, GroundingUpdate, ToolCallsRequested]


# ---------------------------------------------------------------------------
# ProviderSession
# ---------------------------------------------------------------------------


class ProviderSession(abc.ABC):
    """One conversation with a provider, seeded from a :class:`StreamRequest`.

    ``send`` and ``send_tool_results`` are async generators: iterating them is
    the chunk producer, ``aclose()`` on the generator (or on the session)
    finalises the underlying connection.
    """

    def __init__(self, provider: "BaseProvider", request: StreamRequest) -> None:
        self.provider = provider
        self.request = request

    @abc.abstractmethod
    async def send(self, message: str) -> AsyncGenerator[AdapterEvent, None]:
        """Send the user *message* and stream the model's reply."""
        ...
        yield  # type: ignore[misc]  # pragma: no cover

    async def send_tool_results(
        self, results: Sequence[ToolResult]
    ) -> AsyncGenerator[AdapterEvent, None]:
        """Feed tool results back and stream the continuation.

        Only adapters that can emit :class:`ToolCallsRequested` override this.
        """
        raise UnsupportedFeatureError(
            f"{type(self.provider).__name__} does not support tool calls."
        )
        yield  # type: ignore[misc]  # pragma: no cover

    async def aclose(self) -> None:
        """Release per-session resources. Default: nothing to release."""
        return None


# ---------------------------------------------------------------------------
# BaseProvider ABC
# ---------------------------------------------------------------------------


class BaseProvider(abc.ABC):
    """Abstract base for all provider adapters.

    Subclasses implement :meth:`_create_session`; this class owns credential
    resolution so that a missing key always fails before any network I/O.
    """

    DEFAULT_KIND: ClassVar[ProviderKind]
    #: Whether the adapter can surface tool calls to the orchestrator.
    SUPPORTS_TOOLS: ClassVar[bool] = False

    def __init__(
        self,
        *,
        kind: Optional[ProviderKind] = None,
        credentials: Optional[CredentialProvider] = None,
        api_key: Optional[str] = None,
        timeout: float = 180.0,
        **kwargs: Any,
    ) -> None:
        self.kind = kind or self.DEFAULT_KIND
        self.credentials = credentials
        self.api_key = api_key
        self.timeout = timeout
        if kwargs:
            logger.debug(
                "Ignoring unsupported options for %s: %s",
                type(self).__name__,
                sorted(kwargs),
            )

    @property
    def requires_credential(self) -> bool:
        return True

    def resolve_api_key(self) -> Optional[str]:
        """Return the API key, raising :class:`MissingCredentialError` if required and absent."""
        key = self.api_key
        if not key and self.credentials is not None:
            key = self.credentials.get_credential(self.kind)
        if not key and self.requires_credential:
            raise MissingCredentialError(self.kind.value)
        return key or None

    def open_session(self, request: StreamRequest) -> ProviderSession:
        """Resolve credentials and create a session. Performs no network I/O."""
        api_key = self.resolve_api_key()
        logger.debug(
            "Opening %s session (model=%s, history=%d turns)",
            self.kind.value,
            request.model,
            len(request.history),
        )
        return self._create_session(request, api_key)

    @abc.abstractmethod
    def _create_session(
        self, request: StreamRequest, api_key: Optional[str]
    ) -> ProviderSession:
        """Build the provider-specific session object."""
        ...

    # ------------------------------------------------------------------
    # Optional features (override where the provider offers them)
    # ------------------------------------------------------------------

    async def image_to_text(
        self,
        model: str,
        image: Union[bytes, str],
        mime_type: str,
        prompt: Optional[str] = None,
    ) -> str:
        """Extract text from (or describe) *image*; ``str`` input is base64."""
        self.resolve_api_key()
        raise UnsupportedFeatureError(
            "Image-to-text is currently supported only for Google Gemini."
        )

    async def text_to_image(self, prompt: str, model: Optional[str] = None) -> GeneratedImage:
        self.resolve_api_key()
        raise UnsupportedFeatureError(
            "Text-to-image is currently supported only for Google Gemini."
        )

    async def pull_model(self, name: str) -> str:
        """Download a model onto the endpoint; return the last reported status."""
        raise UnsupportedFeatureError(
            f"{self.kind.value} does not support downloading models."
        )

    async def aclose(self) -> None:
        """Close lazily created clients. Default: nothing to close."""
        return None
