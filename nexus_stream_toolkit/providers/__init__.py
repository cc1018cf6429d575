"""Provider adapters and the ProviderKind registry."""

from ..models import ProviderKind
from ._base import (
    AdapterEvent,
    BaseProvider,
    GroundingUpdate,
    ProviderSession,
    TextDelta,
    ToolCallsRequested,
)
from ._registry import ProviderRegistry, create_adapter

__all__ = [
    "AdapterEvent",
    "BaseProvider",
    "GroundingUpdate",
    "ProviderKind",
    "ProviderRegistry",
    "ProviderSession",
    "TextDelta",
    "ToolCallsRequested",
    "create_adapter",
]
