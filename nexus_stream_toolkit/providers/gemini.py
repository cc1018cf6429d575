"""Google Gemini adapter using the google-genai SDK's async chat sessions."""

from __future__ import annotations

import base64
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence, Set, Union
from uuid import uuid4

from ..exceptions import ConfigurationError, NexusToolkitError, ProviderError, ProviderHTTPError
from ..models import (
    Capability,
    Citation,
    GeneratedImage,
    GroundingMetadata,
    ProviderKind,
    Role,
    StreamRequest,
    ToolCall,
    ToolResult,
)
from ..tools.browser import (
    BROWSER_SYSTEM_INSTRUCTIONS,
    BROWSER_TOOL_DESCRIPTION,
    BROWSER_TOOL_NAME,
    URL_PARAMETER_DESCRIPTION,
)
from ._base import (
    AdapterEvent,
    BaseProvider,
    GroundingUpdate,
    ProviderSession,
    TextDelta,
    ToolCallsRequested,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "imagen-4.0-generate-001"
DEFAULT_IMAGE_PROMPT = (
    "Extract all readable text from this image. "
    "If there is no text, describe the image clearly."
)


def _types() -> Any:
    try:
        from google.genai import types
    except ImportError:
        raise ConfigurationError(
            "Gemini models require the 'google-genai' package. "
            "Install it with: pip install google-genai"
        )
    return types


class GeminiAdapter(BaseProvider):
    """Provider adapter for Google Gemini.

    Each :class:`StreamRequest` gets its own SDK chat seeded with the
    conversation history, so tool results can be sent back on the same chat.
    """

    DEFAULT_KIND = ProviderKind.GOOGLE
    SUPPORTS_TOOLS = True

    def __init__(self, *, client: Any = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client: Any = client
        self._client_key: Optional[str] = None
        self._owns_client = client is None

    def _get_client(self, api_key: Optional[str]) -> Any:
        """Lazily import and create a ``google.genai.Client`` for *api_key*."""
        if self._client is not None and (not self._owns_client or self._client_key == api_key):
            return self._client
        try:
            from google import genai
        except ImportError:
            raise ConfigurationError(
                "Gemini models require the 'google-genai' package. "
                "Install it with: pip install google-genai"
            )
        self._client = genai.Client(api_key=api_key)
        self._client_key = api_key
        return self._client

    # ------------------------------------------------------------------
    # Request conversion
    # ------------------------------------------------------------------

    @staticmethod
    def build_system_instruction(request: StreamRequest) -> str:
        instruction = request.system_instruction
        if request.has_capability(Capability.BROWSER):
            instruction += BROWSER_SYSTEM_INSTRUCTIONS
        return instruction

    @staticmethod
    def build_tools(request: StreamRequest) -> List[Any]:
        types = _types()
        tools: List[Any] = []
        if request.has_capability(Capability.WEB_SEARCH):
            tools.append(types.Tool(google_search=types.GoogleSearch()))
        if request.has_capability(Capability.BROWSER):
            declaration = types.FunctionDeclaration(
                name=BROWSER_TOOL_NAME,
                description=BROWSER_TOOL_DESCRIPTION,
                parameters=types.Schema(
                    type=types.Type.OBJECT,
                    properties={
                        "url": types.Schema(
                            type=types.Type.STRING,
                            description=URL_PARAMETER_DESCRIPTION,
                        )
                    },
                    required=["url"],
                ),
            )
            tools.append(types.Tool(function_declarations=[declaration]))
        return tools

    @staticmethod
    def build_history(request: StreamRequest) -> List[Any]:
        """Seed turns for the chat. Error turns are UI artefacts and are left out."""
        types = _types()
        return [
            types.Content(
                role="model" if turn.role == Role.ASSISTANT else "user",
                parts=[types.Part(text=turn.content)],
            )
            for turn in request.history
            if turn.content and not turn.is_error
        ]

    def _create_session(
        self, request: StreamRequest, api_key: Optional[str]
    ) -> ProviderSession:
        types = _types()
        client = self._get_client(api_key)
        tools = self.build_tools(request)
        config = types.GenerateContentConfig(
            system_instruction=self.build_system_instruction(request) or None,
            tools=tools or None,
        )
        chat = client.aio.chats.create(
            model=request.model, config=config, history=self.build_history(request)
        )
        return GeminiSession(self, request, chat)

    # ------------------------------------------------------------------
    # Image features
    # ------------------------------------------------------------------

    async def image_to_text(
        self,
        model: str,
        image: Union[bytes, str],
        mime_type: str,
        prompt: Optional[str] = None,
    ) -> str:
        """Extract the text of *image* (or describe it) with a one-shot request."""
        api_key = self.resolve_api_key()
        types = _types()
        client = self._get_client(api_key)
        if isinstance(image, str):
            image = base64.b64decode(image)
        contents = [
            types.Part.from_text(text=prompt or DEFAULT_IMAGE_PROMPT),
            types.Part.from_bytes(data=image, mime_type=mime_type),
        ]
        try:
            response = await client.aio.models.generate_content(model=model, contents=contents)
        except Exception as e:
            raise GeminiSession._convert_error(e) from e

        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise ProviderError("No text returned for this image.")
        return text

    async def text_to_image(self, prompt: str, model: Optional[str] = None) -> GeneratedImage:
        api_key = self.resolve_api_key()
        client = self._get_client(api_key)
        try:
            response = await client.aio.models.generate_images(
                model=model or DEFAULT_IMAGE_MODEL, prompt=prompt
            )
        except Exception as e:
            raise GeminiSession._convert_error(e) from e

        generated = getattr(response, "generated_images", None) or []
        image = getattr(generated[0], "image", None) if generated else None
        data = getattr(image, "image_bytes", None)
        if not data:
            raise ProviderError("No image data returned from the model.")
        return GeneratedImage(data=data, mime_type=getattr(image, "mime_type", None) or "image/png")

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    @staticmethod
    def convert_grounding(metadata: Any) -> Optional[GroundingMetadata]:
        if metadata is None:
            return None
        citations = []
        for chunk in getattr(metadata, "grounding_chunks", None) or []:
            web = getattr(chunk, "web", None)
            uri = getattr(web, "uri", None) if web is not None else None
            if uri:
                citations.append(Citation(uri=uri, title=getattr(web, "title", None) or ""))
        queries = [q for q in getattr(metadata, "web_search_queries", None) or [] if q]
        grounding = GroundingMetadata(citations=citations, queries=queries)
        return None if grounding.is_empty() else grounding


class GeminiSession(ProviderSession):
    provider: GeminiAdapter

    def __init__(self, provider: GeminiAdapter, request: StreamRequest, chat: Any) -> None:
        super().__init__(provider, request)
        self._chat = chat
        # Ids we invented because the API sent none; never echoed back.
        self._generated_ids: Set[str] = set()

    async def send(self, message: str) -> AsyncGenerator[AdapterEvent, None]:
        async for event in self._stream(message):
            yield event

    async def send_tool_results(
        self, results: Sequence[ToolResult]
    ) -> AsyncGenerator[AdapterEvent, None]:
        types = _types()
        parts = [
            types.Part(
                function_response=types.FunctionResponse(
                    id=None if result.call_id in self._generated_ids else result.call_id,
                    name=result.name,
                    response={"content": result.content},
                )
            )
            for result in results
        ]
        async for event in self._stream(parts):
            yield event

    async def _stream(self, message: Union[str, List[Any]]) -> AsyncGenerator[AdapterEvent, None]:
        calls: List[ToolCall] = []
        try:
            stream = await self._chat.send_message_stream(message)
            async for chunk in stream:
                candidates = getattr(chunk, "candidates", None) or []
                if not candidates:
                    continue
                candidate = candidates[0]

                grounding = GeminiAdapter.convert_grounding(
                    getattr(candidate, "grounding_metadata", None)
                )
                if grounding is not None:
                    yield GroundingUpdate(grounding)

                content = getattr(candidate, "content", None)
                for part in getattr(content, "parts", None) or []:
                    function_call = getattr(part, "function_call", None)
                    if function_call is not None:
                        calls.append(self._to_tool_call(function_call))
                    text = getattr(part, "text", None)
                    if function_call is None and text and not getattr(part, "thought", False):
                        if calls:
                            logger.debug("Dropping text after function call: %.80s", text)
                            continue
                        yield TextDelta(text)
        except NexusToolkitError:
            raise
        except Exception as e:
            raise self._convert_error(e) from e

        # The SDK records the model turn only once the stream is drained, so
        # calls are surfaced after it ends.
        if calls:
            yield ToolCallsRequested(tuple(calls))

    def _to_tool_call(self, function_call: Any) -> ToolCall:
        call_id = getattr(function_call, "id", None)
        if not call_id:
            call_id = f"call_{function_call.name}_{uuid4().hex[:8]}"
            self._generated_ids.add(call_id)
        args: Dict[str, Any] = dict(getattr(function_call, "args", None) or {})
        return ToolCall(id=call_id, name=function_call.name, arguments=args)

    @staticmethod
    def _convert_error(error: Exception) -> ProviderError:
        from google.genai import errors

        if isinstance(error, errors.APIError):
            return ProviderHTTPError(
                getattr(error, "code", 0) or 0,
                getattr(error, "message", None) or str(error),
                provider=ProviderKind.GOOGLE.value,
            )
        return ProviderError(f"Gemini API error: {error}")
