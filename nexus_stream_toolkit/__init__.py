# nexus_stream_toolkit/__init__.py
import logging
import os
from dotenv import load_dotenv

# Configure basic logging for the library
# Users can customize this further in their application
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Load a .env from the CWD so provider keys are available to AppSettings
try:
    dotenv_path = os.path.join(os.getcwd(), ".env")
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path=dotenv_path)
except Exception as e:
    logging.getLogger(__name__).warning("Could not load .env file: %s", e)


# Expose key components for easy import
from .agents import DEFAULT_AGENTS, AgentConfig  # noqa: E402
from .cancellation import CancellationToken  # noqa: E402
from .chat import ChatSession, InMemoryMessageStore, MessageStore  # noqa: E402
from .config import AppSettings, CredentialProvider  # noqa: E402
from .conversation import (  # noqa: E402
    AgentConversation,
    AgentConversationMessage,
    AgentConversationRunner,
)
from .exceptions import (  # noqa: E402
    AbortedError,
    ConfigurationError,
    MissingCredentialError,
    NexusToolkitError,
    ProviderError,
    ProviderHTTPError,
    ToolError,
    ToolExecutionError,
    ToolLoopExceededError,
    UnsupportedFeatureError,
)
from .models import (  # noqa: E402
    Capability,
    Citation,
    GeneratedImage,
    GroundingMetadata,
    ProviderKind,
    Role,
    StreamRequest,
    StreamResult,
    ToolCall,
    ToolResult,
    Turn,
)
from .orchestrator import (  # noqa: E402
    BROWSING_NOTICE,
    OrchestrationState,
    StreamOrchestrator,
)
from .playback import PlaybackBuffer, PlaybackReconciler  # noqa: E402
from .providers import BaseProvider, ProviderRegistry, create_adapter  # noqa: E402
from .tools import BrowserTool  # noqa: E402

__all__ = [
    "AbortedError",
    "AgentConfig",
    "AgentConversation",
    "AgentConversationMessage",
    "AgentConversationRunner",
    "AppSettings",
    "BROWSING_NOTICE",
    "BaseProvider",
    "BrowserTool",
    "CancellationToken",
    "Capability",
    "ChatSession",
    "Citation",
    "ConfigurationError",
    "CredentialProvider",
    "DEFAULT_AGENTS",
    "GeneratedImage",
    "GroundingMetadata",
    "InMemoryMessageStore",
    "MessageStore",
    "MissingCredentialError",
    "NexusToolkitError",
    "OrchestrationState",
    "PlaybackBuffer",
    "PlaybackReconciler",
    "ProviderError",
    "ProviderHTTPError",
    "ProviderKind",
    "ProviderRegistry",
    "Role",
    "StreamOrchestrator",
    "StreamRequest",
    "StreamResult",
    "ToolCall",
    "ToolError",
    "ToolExecutionError",
    "ToolLoopExceededError",
    "ToolResult",
    "Turn",
    "UnsupportedFeatureError",
    "create_adapter",
]

try:
    from importlib.metadata import version

    __version__ = version("nexus-stream-toolkit")
except Exception:
    __version__ = "0.0.0-unknown"
