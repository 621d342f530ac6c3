from __future__ import annotations

import re
from typing import Any, Dict
from urllib.parse import urlsplit, urlunsplit


REDACT_KEYS = {
    "password",
    "passphrase",
    "secret",
    "token",
    "api_key",
    "private_key",
    "firebase_admin_private_key",
    "authorization",
}

URL_KEYS = {"database_url", "url", "uri"}

_URL_RE = re.compile(r"\b([a-z][a-z0-9+.\-]*://)([^\s/@:]+):([^\s/@]+)@", re.IGNORECASE)
_KV_RE = re.compile(r"(?i)\b(password|passphrase|token|api[_-]?key|private[_-]?key)\s*=\s*([^\s,;]+)")


def redact_url(url: str) -> str:
    """Mask the password part of a connection string, keep everything else readable."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return redact_text(url)
    if not parts.password:
        return url
    user = parts.username or ""
    host = parts.hostname or ""
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    netloc = f"{user}:***@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def redact_text(text: str) -> str:
    s = _URL_RE.sub(r"\1\2:***@", text)
    s = _KV_RE.sub(r"\1=<redacted>", s)
    return s


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            key = str(k).lower()
            if key in REDACT_KEYS:
                out[k] = "***REDACTED***"
            elif key in URL_KEYS and isinstance(v, str):
                out[k] = redact_url(v)
            else:
                out[k] = _redact(v)
        return out
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    if isinstance(obj, str):
        return redact_text(obj)
    return obj


def redact(obj: Any) -> Any:
    return _redact(obj)
