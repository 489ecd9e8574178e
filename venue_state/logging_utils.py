"""
Venue State - Secure Logging.

============================================================
PURPOSE
============================================================
Keeps Bitfinex credentials out of log output.

- mask_frame(): scrub an outgoing / incoming frame (mappings and
  arrays, nested) before it is logged
- CredentialFilter: last line of defence on rendered messages
- configure_logging(): CLI log setup with the filter installed

============================================================
WHAT COUNTS AS SECRET
============================================================
- Values under credential-like keys (apiKey, authSig, ...)
- 96-char hex strings (HMAC-SHA384 signatures)
- Long alphanumeric tokens (API keys)

============================================================
"""

import logging
import re
from typing import Any


# ============================================================
# PATTERNS
# ============================================================

SECRET_KEYS = frozenset({
    "apikey",
    "api_key",
    "apisecret",
    "api_secret",
    "authsig",
    "secret",
    "signature",
    "token",
    "password",
})

SECRET_PATTERNS = (
    (re.compile(r"\b[a-f0-9]{96}\b", re.IGNORECASE), "***SIG***"),
    (re.compile(r"\b[A-Za-z0-9]{40,}\b"), "***KEY***"),
)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


# ============================================================
# MASKING
# ============================================================

def mask_value(value: Any, visible: int = 4) -> str:
    """'abcdefgh' -> 'abcd...***'. Short or empty values are hidden entirely."""
    text = "" if value is None else str(value)
    if len(text) <= visible:
        return "***"
    return f"{text[:visible]}...***"


def mask_text(text: str) -> str:
    """Replace signature- and key-shaped substrings."""
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_frame(frame: Any) -> Any:
    """
    Copy of a frame with secrets masked.

    Mappings are masked by key, strings by pattern; lists and
    nested mappings are walked.
    """
    if isinstance(frame, dict):
        return {
            key: mask_value(value) if str(key).lower() in SECRET_KEYS else mask_frame(value)
            for key, value in frame.items()
        }
    if isinstance(frame, (list, tuple)):
        return [mask_frame(item) for item in frame]
    if isinstance(frame, str):
        return mask_text(frame)
    return frame


class CredentialFilter(logging.Filter):
    """Scrubs secret-shaped substrings from every record passing a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_text(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


# ============================================================
# SETUP
# ============================================================

def configure_logging(level: str = "INFO") -> None:
    """Root logging for command-line use."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CredentialFilter())

    root = logging.getLogger()
    root.setLevel(numeric)
    root.addHandler(handler)

    # aiohttp is chatty at debug level
    logging.getLogger("aiohttp").setLevel(max(numeric, logging.INFO))
