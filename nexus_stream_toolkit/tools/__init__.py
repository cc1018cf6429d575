from .browser import BrowserTool, detect_bot_block, normalize_url
from .html import extract_html_from_relay, html_to_text
from .shared import SharedResource

__all__ = [
    "BrowserTool",
    "SharedResource",
    "detect_bot_block",
    "extract_html_from_relay",
    "html_to_text",
    "normalize_url",
]
