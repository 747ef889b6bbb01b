"""
Helpers shared by outbound API clients
"""

import re
from typing import Dict, List, Optional

# OpenAI-style keys and long opaque tokens
_SECRET_PATTERNS = [
    re.compile(r'sk-[a-zA-Z0-9_\-]{20,}'),
    re.compile(r'[a-zA-Z0-9]{32,}'),
]


def mask_secret(secret: str) -> str:
    """Keep the first and last four characters of a secret"""
    if len(secret) <= 8:
        return "****"
    return secret[:4] + "*" * (len(secret) - 8) + secret[-4:]


def sanitize_secrets(text: str, secret: Optional[str] = None) -> str:
    """
    Mask API keys in text destined for logs or error messages

    Args:
        text: Text that may contain a key
        secret: A known key to mask verbatim before pattern matching

    Returns:
        Text with keys masked
    """
    if not text:
        return text

    if secret and secret in text:
        text = text.replace(secret, mask_secret(secret))

    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: mask_secret(m.group()), text)

    return text


def format_messages_for_log(messages: List[Dict[str, str]]) -> str:
    """One ``[role]: content`` line per transcript entry"""
    return "\n".join(f"[{msg.get('role', '')}]: {msg.get('content', '')}" for msg in messages)
