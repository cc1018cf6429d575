"""Application settings and credential lookup."""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from pydantic import BaseModel, Field, field_validator

from .models import ProviderKind

logger = logging.getLogger(__name__)

DEFAULT_BROWSE_ENDPOINT = "http://localhost:3001/api/browse"

# ``{url}`` is replaced by the percent-encoded target URL.
DEFAULT_RELAY_TEMPLATES: Tuple[str, ...] = (
    "https://api.allorigins.win/get?url={url}",
    "https://corsproxy.io/?{url}",
)

# Environment fallbacks per provider, checked in order.
_CREDENTIAL_ENV_VARS: Dict[ProviderKind, Tuple[str, ...]] = {
    ProviderKind.GOOGLE: ("GOOGLE_API_KEY", "GEMINI_API_KEY", "API_KEY"),
    ProviderKind.OPENAI: ("OPENAI_API_KEY",),
    ProviderKind.GROQ: ("GROQ_API_KEY",),
    ProviderKind.XAI: ("XAI_API_KEY",),
    ProviderKind.ANTHROPIC: ("ANTHROPIC_API_KEY",),
    ProviderKind.LOCAL: ("LOCAL_API_KEY",),
}

# NEXUS_* environment variable -> AppSettings field
_SETTINGS_ENV_VARS: Dict[str, str] = {
    "NEXUS_LOCAL_BASE_URL": "local_base_url",
    "NEXUS_BROWSE_ENDPOINT": "browse_endpoint",
    "NEXUS_MIN_LOADER_DURATION": "min_loader_duration",
    "NEXUS_TICK_INTERVAL": "tick_interval",
    "NEXUS_CHARS_PER_TICK": "chars_per_tick",
    "NEXUS_TOOL_TIMEOUT": "tool_timeout",
    "NEXUS_MAX_PAGE_CHARS": "max_page_chars",
    "NEXUS_MAX_TOOL_ROUNDS": "max_tool_rounds",
    "NEXUS_REQUEST_TIMEOUT": "request_timeout",
}


@runtime_checkable
class CredentialProvider(Protocol):
    """Anything that can hand out an API key for a provider."""

    def get_credential(self, provider: ProviderKind) -> Optional[str]: ...


class AppSettings(BaseModel):
    """User-level settings: provider keys, endpoints and timing constants.

    Explicit key fields win over environment variables; see
    :meth:`get_credential`.
    """

    google_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    xai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    local_api_key: Optional[str] = None
    local_base_url: Optional[str] = None

    browse_endpoint: Optional[str] = DEFAULT_BROWSE_ENDPOINT
    relay_templates: List[str] = Field(
        default_factory=lambda: list(DEFAULT_RELAY_TEMPLATES)
    )

    min_loader_duration: float = Field(default=0.5, ge=0)
    tick_interval: float = Field(default=0.03, gt=0)
    chars_per_tick: int = Field(default=3, ge=1)
    tool_timeout: float = Field(default=15.0, gt=0)
    max_page_chars: int = Field(default=20_000, ge=1)
    max_tool_rounds: int = Field(default=5, ge=0)
    request_timeout: float = Field(default=180.0, gt=0)

    @field_validator("browse_endpoint")
    @classmethod
    def _empty_endpoint_disables(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    def get_credential(self, provider: ProviderKind) -> Optional[str]:
        explicit = getattr(self, f"{provider.value}_api_key", None)
        if explicit:
            return explicit
        for var in _CREDENTIAL_ENV_VARS.get(provider, ()):
            value = os.environ.get(var)
            if value:
                return value
        return None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppSettings":
        """Build settings from ``NEXUS_*`` variables (keys stay env-resolved lazily)."""
        env = os.environ if environ is None else environ
        values: Dict[str, str] = {}
        for var, field_name in _SETTINGS_ENV_VARS.items():
            if var in env:
                values[field_name] = env[var]
        if "local_base_url" not in values and env.get("OLLAMA_BASE_URL"):
            values["local_base_url"] = env["OLLAMA_BASE_URL"]
        logger.debug("Settings loaded from environment: %s", sorted(values))
        return cls(**values)
