"""The ``visit_website`` tool: fetch a page and return its readable text.

Retrieval goes through a local headless-browser endpoint first and falls back
to public CORS relays. Failures never raise: they are returned as
``"Error: ..."`` strings so the model can explain them to the user. Only an
invalid URL raises :class:`ToolError`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote, urlsplit

import httpx

from ..config import DEFAULT_BROWSE_ENDPOINT, DEFAULT_RELAY_TEMPLATES, AppSettings
from ..exceptions import ToolError, ToolExecutionError
from ..models import Capability
from .html import collapse_whitespace, extract_html_from_relay, html_to_text
from .shared import SharedResource

logger = logging.getLogger(__name__)

BROWSER_TOOL_NAME = "visit_website"

BROWSER_TOOL_DESCRIPTION = (
    "REQUIRED TOOL: Visits a website and retrieves its text content. You MUST use "
    "this when user asks to open, launch, browse, visit, or view any website. Also "
    "use when user wants information from a specific URL. This is your primary way "
    "to access web content."
)

URL_PARAMETER_DESCRIPTION = (
    "The complete URL to visit (must include https://). Examples: "
    "https://google.com, https://amazon.com/s?k=shoes"
)

BROWSER_TOOL_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "url": {"type": "string", "description": URL_PARAMETER_DESCRIPTION},
    },
    "required": ["url"],
}

# Appended to the agent's system instruction when browsing is enabled.
BROWSER_SYSTEM_INSTRUCTIONS = """

[CRITICAL BROWSER TOOL INSTRUCTIONS]: You MUST use the 'visit_website' function when:
    - User says "open [website]", "launch [website]", "go to [website]", "browse [website]", "visit [website]"
    - User asks "what's on [website]" or "show me [website]"
    - User wants to search a specific site (construct the URL: https://site.com/search?q=query)
    - NEVER say you cannot open websites or apps - you CAN and MUST use visit_website
    - Always call visit_website with full URLs including https://
    - After getting content, summarize what you found on the page"""

BOT_BLOCK_TERMS = ("captcha", "robot", "unusual traffic", "verify you are a human")

BOT_BLOCK_MESSAGE = (
    "Error: The website blocked the automated request (CAPTCHA/Bot detection). "
    "Tell the user you cannot browse this specific site directly due to bot "
    "protection, but provide them the direct link to click."
)

MIN_CONTENT_CHARS = 50

_HTTP_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
# Any other explicit scheme: "ftp://...", "javascript:...", "mailto:...".
# A colon followed by a digit is a port ("example.com:8080"), not a scheme.
_OTHER_SCHEME = re.compile(r"^([a-z][a-z0-9+.\-]*):(//|(?!\d))", re.IGNORECASE)
# Schemes whose "@" is part of an address, not credentials before a host.
_OPAQUE_SCHEMES = frozenset({"mailto", "javascript", "data", "tel", "sms", "sip", "xmpp", "news"})


def _is_userinfo(url: str, match: "re.Match[str]") -> bool:
    """True for "user:pass@host" where the part before the colon is a user name."""
    if match.group(2) == "//" or match.group(1).lower() in _OPAQUE_SCHEMES:
        return False
    authority = re.split(r"[/?#]", url, maxsplit=1)[0]
    return "@" in authority


def normalize_url(value: Any) -> str:
    """Trim *value* and make it an absolute http(s) URL.

    ``//host`` gets ``https:``, a bare host (``user:pass@host`` included) gets
    ``https://``. Any other scheme, or a URL without a host, raises
    :class:`ToolError`.
    """
    if not isinstance(value, str) or not value.strip():
        raise ToolError("visit_website requires a non-empty 'url' argument.")
    url = value.strip()
    if url.startswith("//"):
        url = f"https:{url}"
    elif not _HTTP_SCHEME.match(url):
        scheme = _OTHER_SCHEME.match(url)
        if scheme is not None and not _is_userinfo(url, scheme):
            raise ToolError(f"Unsupported URL scheme: '{url}'. Only http(s) URLs can be visited.")
        url = f"https://{url}"
    try:
        host = urlsplit(url).hostname
    except ValueError as e:
        raise ToolError(f"Invalid URL '{value}': {e}") from e
    if not host:
        raise ToolError(f"Invalid URL '{value}': no host.")
    return url


def detect_bot_block(text: str) -> bool:
    lowered = text.lower()
    return any(term in lowered for term in BOT_BLOCK_TERMS)


class BrowserTool:
    """Executor for the ``visit_website`` function call."""

    NAME = BROWSER_TOOL_NAME
    DESCRIPTION = BROWSER_TOOL_DESCRIPTION
    PARAMETERS = BROWSER_TOOL_PARAMETERS
    CAPABILITY = Capability.BROWSER

    def __init__(
        self,
        *,
        browse_endpoint: Optional[str] = DEFAULT_BROWSE_ENDPOINT,
        relay_templates: Sequence[str] = DEFAULT_RELAY_TEMPLATES,
        timeout: float = 15.0,
        max_chars: int = 20_000,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.browse_endpoint = browse_endpoint
        self.relay_templates = tuple(relay_templates)
        self.timeout = timeout
        self.max_chars = max_chars

        if http_client is not None:
            self._client: SharedResource[httpx.AsyncClient] = SharedResource(
                lambda: http_client, name="browser HTTP client"
            )
        else:
            self._client = SharedResource(
                lambda: httpx.AsyncClient(timeout=timeout, follow_redirects=True),
                closer=lambda client: client.aclose(),
                name="browser HTTP client",
            )

    @classmethod
    def from_settings(
        cls, settings: AppSettings, *, http_client: Optional[httpx.AsyncClient] = None
    ) -> "BrowserTool":
        return cls(
            browse_endpoint=settings.browse_endpoint,
            relay_templates=settings.relay_templates,
            timeout=settings.tool_timeout,
            max_chars=settings.max_page_chars,
            http_client=http_client,
        )

    @classmethod
    def declaration(cls) -> Dict[str, Any]:
        """JSON-schema function declaration advertised to the model."""
        return {"name": cls.NAME, "description": cls.DESCRIPTION, "parameters": cls.PARAMETERS}

    @property
    def timeout_message(self) -> str:
        return f"Error: Website request timed out ({self.timeout:g}s limit)."

    async def execute(self, url: str) -> str:
        target = normalize_url(url)
        client = await self._client.get()
        logger.info("Visiting %s", target)

        try:
            # One deadline covers the primary channel and every relay attempt.
            async with asyncio.timeout(self.timeout):
                content = await self._fetch_primary(client, target)
                if content is None:
                    content = await self._fetch_via_relays(client, target)
        except TimeoutError:
            logger.warning("Visiting %s timed out after %ss", target, self.timeout)
            return self.timeout_message
        except ToolExecutionError as e:
            logger.warning("All retrieval channels failed for %s: %s", target, e)
            return f"Error: {e}"
        return content

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Retrieval channels
    # ------------------------------------------------------------------

    async def _fetch_primary(self, client: httpx.AsyncClient, url: str) -> Optional[str]:
        """Headless-browser endpoint. ``None`` means "fall through to relays"."""
        if not self.browse_endpoint:
            return None
        try:
            response = await client.post(self.browse_endpoint, json={"url": url})
            if not response.is_success:
                logger.info("Browse endpoint returned status %d", response.status_code)
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.info("Browse endpoint not available (%s), using relay fallback", e)
            return None

        if not isinstance(data, dict) or not data.get("success"):
            return None
        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            return None
        text = collapse_whitespace(content)
        if detect_bot_block(text):
            return BOT_BLOCK_MESSAGE
        return text[: self.max_chars]

    async def _fetch_via_relays(self, client: httpx.AsyncClient, url: str) -> str:
        """Public relays in order; raises :class:`ToolExecutionError` when all fail."""
        encoded = quote(url, safe="!~*'()")
        last_error = "Network error"
        for template in self.relay_templates:
            relay_url = template.format(url=encoded)
            try:
                response = await client.get(relay_url)
            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                logger.debug("Relay %s failed: %s", relay_url, last_error)
                continue
            if not response.is_success:
                last_error = f"Status {response.status_code}"
                continue

            html = extract_html_from_relay(response.text)
            if not html:
                last_error = "Empty response"
                continue
            text = html_to_text(html)
            if detect_bot_block(text):
                return BOT_BLOCK_MESSAGE
            if len(text) < MIN_CONTENT_CHARS:
                last_error = "Page content seems empty or protected by bot detection"
                continue
            return text[: self.max_chars]

        raise ToolExecutionError(f"Failed to fetch URL ({last_error}).")
