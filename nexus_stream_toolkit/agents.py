"""Agent presets: a persona bound to a provider, a model and a set of capabilities."""

from __future__ import annotations

from typing import Any, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import Capability, ProviderKind

GEMINI_FLASH = "gemini-3-flash-preview"
GEMINI_PRO = "gemini-3-pro-preview"

INITIAL_MESSAGE = "Hello! I'm ready to help. What's on your mind?"


class AgentConfig(BaseModel):
    id: str
    name: str
    description: str = ""
    system_instruction: str = ""
    provider: ProviderKind = ProviderKind.GOOGLE
    model: str = GEMINI_FLASH
    avatar_url: Optional[str] = None
    color: Optional[str] = None
    capabilities: FrozenSet[Capability] = frozenset()

    @field_validator("capabilities", mode="before")
    @classmethod
    def _parse_tool_names(cls, value: Any) -> Any:
        """Accept stored tool names such as ``"googleSearch"`` alongside enum values."""
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        parsed = []
        for item in value:
            if isinstance(item, Capability):
                parsed.append(item)
            else:
                try:
                    parsed.append(Capability(item))
                except ValueError:
                    parsed.append(Capability.from_tool_name(str(item)))
        return frozenset(parsed)


DEFAULT_AGENTS: List[AgentConfig] = [
    AgentConfig(
        id="agent-1",
        name="Nexus Assistant",
        description="A helpful and versatile general assistant.",
        system_instruction=(
            "You are Nexus, a helpful, witty, and precise AI assistant. You aim to "
            "provide clear and concise answers. You are knowledgeable about code, "
            "science, and general trivia."
        ),
        model=GEMINI_FLASH,
        avatar_url="https://picsum.photos/seed/nexus/200/200",
        color="blue",
    ),
    AgentConfig(
        id="agent-2",
        name="Code Architect",
        description="Expert in software design patterns and React.",
        system_instruction=(
            "You are a senior principal software engineer. You specialize in React, "
            "TypeScript, and Tailwind CSS. You prefer functional programming patterns "
            "and emphasize clean, maintainable code. You are critical but constructive."
        ),
        model=GEMINI_PRO,
        avatar_url="https://picsum.photos/seed/coder/200/200",
        color="emerald",
    ),
    AgentConfig(
        id="agent-3",
        name="Creative Spark",
        description="A creative writing partner for stories and poems.",
        system_instruction=(
            "You are a creative writing muse. You help users brainstorm ideas, write "
            "scenes, and improve prose. Your tone is inspiring, imaginative, and "
            "slightly poetic."
        ),
        model=GEMINI_PRO,
        avatar_url="https://picsum.photos/seed/creative/200/200",
        color="purple",
    ),
]
