"""Core data model shared by adapters, the orchestrator and the chat layer.

Usage::

    from nexus_stream_toolkit.models import Capability, StreamRequest, Turn
    from nexus_stream_toolkit.providers import ProviderKind

    request = StreamRequest(
        provider=ProviderKind.GOOGLE,
        model="gemini-2.5-flash",
        system_instruction="You are helpful.",
        history=[Turn(role="user", content="Hi"), Turn(role="assistant", content="Hello!")],
        new_message="Open example.com",
        enabled_capabilities={Capability.BROWSER},
    )
"""

from __future__ import annotations

import base64
import time
import uuid
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .cancellation import CancellationToken


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ProviderKind(str, Enum):
    """Closed set of provider families the toolkit can talk to."""

    GOOGLE = "google"
    OPENAI = "openai"
    GROQ = "groq"
    XAI = "xai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"


class Capability(str, Enum):
    """Agentic capabilities a request can enable."""

    WEB_SEARCH = "web_search"
    BROWSER = "browser"

    @classmethod
    def from_tool_name(cls, name: str) -> "Capability":
        """Map a stored agent tool name (``googleSearch``, ``browser``) to a capability."""
        aliases = {
            "googlesearch": cls.WEB_SEARCH,
            "google_search": cls.WEB_SEARCH,
            "web_search": cls.WEB_SEARCH,
            "browser": cls.BROWSER,
            "visit_website": cls.BROWSER,
        }
        try:
            return aliases[name.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown capability: '{name}'") from None


class Citation(BaseModel):
    uri: str
    title: str = ""


class GroundingMetadata(BaseModel):
    """Citations and search queries attached to a web-search grounded answer."""

    citations: List[Citation] = Field(default_factory=list)
    queries: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.citations and not self.queries


class Turn(BaseModel):
    """One message of a conversation."""

    role: Role
    content: str
    timestamp: float = Field(default_factory=time.time)
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    is_error: bool = False
    grounding_metadata: Optional[GroundingMetadata] = None


class StreamRequest(BaseModel):
    """A normalised request handed to a provider adapter. Immutable once built."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    provider: ProviderKind
    model: str
    system_instruction: str = ""
    history: Tuple[Turn, ...] = ()
    new_message: str
    enabled_capabilities: FrozenSet[Capability] = frozenset()
    cancellation_token: CancellationToken = Field(default_factory=CancellationToken)

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.enabled_capabilities


class StreamResult(BaseModel):
    """Outcome of one orchestration call (one user-visible assistant turn)."""

    content: str
    grounding_metadata: Optional[GroundingMetadata] = None


class ToolCall(BaseModel):
    id: str  # Correlation id issued by (or generated for) the provider
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    call_id: str
    name: str
    content: str


class GeneratedImage(BaseModel):
    """An image produced by a text-to-image model."""

    data: bytes
    mime_type: str = "image/png"

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"
