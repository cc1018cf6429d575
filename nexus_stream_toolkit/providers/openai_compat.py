"""OpenAI-compatible chat completions adapter (OpenAI, Groq, xAI, local Ollama).

All four providers share the same wire format; they differ only in base URL
and in whether an ``Authorization`` header is sent.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from ..exceptions import ProviderError
from ..models import ProviderKind, Role, StreamRequest
from ._base import AdapterEvent, ProviderSession, TextDelta
from ._sse import SSEProvider, iter_sse_data, parse_json_payload

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_PULL_RELAY_ENDPOINT = "http://localhost:3001/api/ollama/pull"

DEFAULT_BASE_URLS: Dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.GROQ: "https://api.groq.com/openai/v1",
    ProviderKind.XAI: "https://api.x.ai/v1",
}


def normalize_ollama_base(value: Optional[str]) -> str:
    """Return the bare Ollama host URL: scheme added, trailing ``/`` and ``/v1`` removed."""
    base = (value or "").strip() or DEFAULT_OLLAMA_BASE_URL
    if not base.lower().startswith(("http://", "https://")):
        base = f"http://{base}"
    base = base.rstrip("/")
    if base.lower().endswith("/v1"):
        base = base[: -len("/v1")]
    return base


def normalize_local_base_url(value: Optional[str]) -> str:
    """OpenAI-compatible base for a local endpoint (always ends in ``/v1``)."""
    return f"{normalize_ollama_base(value)}/v1"


def parse_pull_status(text: str) -> str:
    """Last ``status`` (or ``error``) line of Ollama's NDJSON pull progress."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    for line in reversed(lines):
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(entry, dict):
            continue
        if entry.get("status"):
            return str(entry["status"])
        if entry.get("error"):
            return str(entry["error"])
    return text[:200]


def extract_delta_text(chunk: Dict[str, Any]) -> str:
    """Pull ``choices[0].delta.content`` out of a decoded stream chunk."""
    choices = chunk.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else ""


class OpenAICompatibleAdapter(SSEProvider):
    """Streams ``/chat/completions`` for any OpenAI-compatible provider."""

    DEFAULT_KIND = ProviderKind.OPENAI

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        pull_relay_endpoint: Optional[str] = DEFAULT_PULL_RELAY_ENDPOINT,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.pull_relay_endpoint = pull_relay_endpoint
        if self.kind not in DEFAULT_BASE_URLS and self.kind != ProviderKind.LOCAL:
            raise ValueError(f"{self.kind.value} is not an OpenAI-compatible provider")
        if self.kind == ProviderKind.LOCAL:
            self.base_url = normalize_local_base_url(base_url)
        else:
            self.base_url = (base_url or DEFAULT_BASE_URLS[self.kind]).rstrip("/")

    @property
    def requires_credential(self) -> bool:
        return self.kind != ProviderKind.LOCAL

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def build_headers(self, api_key: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    @staticmethod
    def build_messages(request: StreamRequest, message: str) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        for turn in request.history:
            role = "assistant" if turn.role == Role.ASSISTANT else "user"
            messages.append({"role": role, "content": turn.content})
        messages.append({"role": "user", "content": message})
        return messages

    def build_payload(self, request: StreamRequest, message: str) -> Dict[str, Any]:
        return {
            "model": request.model,
            "messages": self.build_messages(request, message),
            "stream": True,
        }

    def _create_session(
        self, request: StreamRequest, api_key: Optional[str]
    ) -> ProviderSession:
        return OpenAICompatibleSession(self, request, api_key)

    # ------------------------------------------------------------------
    # Model listing
    # ------------------------------------------------------------------

    async def list_models(self) -> List[str]:
        """Model ids the endpoint offers.

        Uses the OpenAI SDK ``models.list()``; for ``local`` an empty or failed
        listing falls back to Ollama's native ``GET /api/tags``.
        """
        from openai import AsyncOpenAI, OpenAIError

        api_key = self.resolve_api_key()
        client = AsyncOpenAI(
            # The SDK insists on a key; Ollama ignores it.
            api_key=api_key or "ollama",
            base_url=self.base_url,
            http_client=self._get_client(),
        )
        try:
            models = [model.id async for model in client.models.list() if model.id]
        except OpenAIError as e:
            if self.kind != ProviderKind.LOCAL:
                raise ProviderError(f"{self.kind.value} model listing failed: {e}") from e
            logger.info("OpenAI-style model listing failed (%s); trying /api/tags", e)
            models = []

        if models or self.kind != ProviderKind.LOCAL:
            return models
        return await self._list_ollama_tags()

    async def _list_ollama_tags(self) -> List[str]:
        url = f"{normalize_ollama_base(self.base_url)}/api/tags"
        try:
            response = await self._get_client().get(url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Ollama models not available. {e}") from e
        entries = data.get("models") if isinstance(data, dict) else None
        names = [m.get("name") for m in entries or [] if isinstance(m, dict)]
        names = [name for name in names if name]
        if not names:
            raise ProviderError("Ollama models not available. No models returned")
        return names

    # ------------------------------------------------------------------
    # Model download
    # ------------------------------------------------------------------

    async def pull_model(self, name: str) -> str:
        """Ask Ollama to download *name*; return its last reported status.

        Tries the endpoint's ``POST /api/pull`` first and falls back to the
        browse server's pull relay when Ollama cannot be reached directly.
        """
        if self.kind != ProviderKind.LOCAL:
            return await super().pull_model(name)
        model = name.strip()
        if not model:
            raise ValueError("Model name is required.")

        base = normalize_ollama_base(self.base_url)
        client = self._get_client()
        try:
            response = await client.post(f"{base}/api/pull", json={"name": model})
            if response.is_success:
                return parse_pull_status(response.text) or "Download started"
            logger.info("Ollama pull returned status %d, trying relay", response.status_code)
        except httpx.HTTPError as e:
            logger.info("Ollama not reachable for pull (%s), trying relay", e)

        if not self.pull_relay_endpoint:
            raise ProviderError("Ollama download failed. Ollama is not reachable")
        try:
            response = await client.post(
                self.pull_relay_endpoint, params={"baseUrl": base}, json={"name": model}
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Ollama download failed. {e}") from e
        if not response.is_success:
            detail = response.text or f"Proxy status {response.status_code}"
            raise ProviderError(f"Ollama download failed. {detail}")
        try:
            data = response.json()
        except ValueError:
            data = None
        status = data.get("status") if isinstance(data, dict) else None
        return status or "Download started"


class OpenAICompatibleSession(ProviderSession):
    provider: OpenAICompatibleAdapter

    def __init__(
        self,
        provider: OpenAICompatibleAdapter,
        request: StreamRequest,
        api_key: Optional[str],
    ) -> None:
        super().__init__(provider, request)
        self._api_key = api_key

    async def send(self, message: str) -> AsyncGenerator[AdapterEvent, None]:
        adapter = self.provider
        lines = adapter.stream_lines(
            adapter.completions_url,
            headers=adapter.build_headers(self._api_key),
            payload=adapter.build_payload(self.request, message),
        )
        try:
            async for _event, data in iter_sse_data(lines):
                if data == "[DONE]":
                    return
                chunk = parse_json_payload(data)
                if chunk is None:
                    continue
                text = extract_delta_text(chunk)
                if text:
                    yield TextDelta(text)
        finally:
            await lines.aclose()
