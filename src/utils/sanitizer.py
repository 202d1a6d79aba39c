# src/utils/sanitizer.py
import re
from typing import Optional

from core.config import settings
from .logger import setup_logger

logger = setup_logger("SANITIZER")

SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.I)
SCRIPT_TAG = re.compile(r"</?script\b[^>]*>", re.I)
PROTOCOL_HANDLER = re.compile(r"(?:java|vb)script\s*:", re.I)
EVENT_HANDLER_ATTR = re.compile(r"\son\w+\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s>]+)", re.I)


def sanitize_content(content: str, max_length: Optional[int] = None) -> str:
    """
    Strip script markup and protocol handlers, then truncate.

    Truncation runs after cleaning so the length limit applies to what is
    actually stored. If cleaning fails the raw text is kept, truncated.
    """
    limit = max_length or settings.COMMENT_MAX_LENGTH
    try:
        cleaned = SCRIPT_BLOCK.sub("", content)
        cleaned = SCRIPT_TAG.sub("", cleaned)
        cleaned = EVENT_HANDLER_ATTR.sub("", cleaned)
        cleaned = PROTOCOL_HANDLER.sub("", cleaned)
        cleaned = cleaned.strip()
    except (TypeError, re.error) as e:
        logger.warning(f"Content sanitization failed, storing raw text: {e}")
        cleaned = str(content).strip()
    return cleaned[:limit]
