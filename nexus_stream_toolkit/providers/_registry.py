"""ProviderKind → adapter routing and ProviderRegistry."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..config import AppSettings, CredentialProvider
from ..exceptions import ConfigurationError
from ..models import ProviderKind
from ._base import BaseProvider

logger = logging.getLogger(__name__)


def create_adapter(
    kind: ProviderKind,
    *,
    credentials: Optional[CredentialProvider] = None,
    settings: Optional[AppSettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    **kwargs: Any,
) -> BaseProvider:
    """Lazily import and instantiate the adapter for *kind*."""
    kind = ProviderKind(kind)
    if credentials is None:
        credentials = settings
    timeout = settings.request_timeout if settings is not None else 180.0
    kwargs.setdefault("timeout", timeout)

    if kind == ProviderKind.GOOGLE:
        from .gemini import GeminiAdapter

        return GeminiAdapter(credentials=credentials, **kwargs)
    elif kind == ProviderKind.ANTHROPIC:
        from .anthropic import AnthropicAdapter

        return AnthropicAdapter(credentials=credentials, http_client=http_client, **kwargs)
    elif kind in (ProviderKind.OPENAI, ProviderKind.GROQ, ProviderKind.XAI, ProviderKind.LOCAL):
        from .openai_compat import OpenAICompatibleAdapter

        if kind == ProviderKind.LOCAL and settings is not None:
            kwargs.setdefault("base_url", settings.local_base_url)
        return OpenAICompatibleAdapter(
            kind=kind, credentials=credentials, http_client=http_client, **kwargs
        )
    raise ConfigurationError(f"Unsupported provider: '{kind}'")


class ProviderRegistry:
    """Hands out one adapter per provider kind, created on first use.

    Adapters created here share *http_client* when given; otherwise each SSE
    adapter lazily opens its own and :meth:`aclose` closes them all.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        *,
        credentials: Optional[CredentialProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        adapters: Optional[Mapping[ProviderKind, BaseProvider]] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self.credentials = credentials or self.settings
        self._http_client = http_client
        self._adapters: Dict[ProviderKind, BaseProvider] = dict(adapters or {})

    def register(self, kind: ProviderKind, adapter: BaseProvider) -> None:
        if kind in self._adapters:
            logger.warning("Adapter for '%s' is already registered. Overwriting.", kind.value)
        self._adapters[kind] = adapter

    def get(self, kind: ProviderKind) -> BaseProvider:
        kind = ProviderKind(kind)
        if kind not in self._adapters:
            self._adapters[kind] = create_adapter(
                kind,
                credentials=self.credentials,
                settings=self.settings,
                http_client=self._http_client,
            )
            logger.debug("Created %s adapter for '%s'", type(self._adapters[kind]).__name__, kind.value)
        return self._adapters[kind]

    async def aclose(self) -> None:
        adapters, self._adapters = list(self._adapters.values()), {}
        for adapter in adapters:
            await adapter.aclose()
