from __future__ import annotations

import hashlib
import re
from urllib.parse import SplitResult, urlsplit, urlunsplit

RTSP_PASSWORD_RE = re.compile(r"(rtsps?://[^:@/]+:)([^@/]+)(@)", re.IGNORECASE)
PASSWORD_PAIR_RE = re.compile(r"(password\s*[=:]\s*)([^\s,;&]+)", re.IGNORECASE)
TOKEN_RE = re.compile(r"(token\s*[=:]\s*)([^\s,;&]+)", re.IGNORECASE)
CAMERA_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")
UNSAFE_FILE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_rtsp_url(url: str) -> str:
    try:
        parts: SplitResult = urlsplit(url)
        if parts.scheme.lower() not in {"rtsp", "rtsps"}:
            return redact_secrets(url)
        hostname = parts.hostname or ""
        user = parts.username
        redacted_user = user if user else "user"
        port = f":{parts.port}" if parts.port else ""
        netloc = f"{redacted_user}:***@{hostname}{port}" if user or parts.password else f"{hostname}{port}"
        return redact_secrets(urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment)))
    except ValueError:
        return redact_secrets(url)


def redact_secrets(text: str) -> str:
    text = RTSP_PASSWORD_RE.sub(r"\1***\3", text)
    text = PASSWORD_PAIR_RE.sub(r"\1***", text)
    text = TOKEN_RE.sub(r"\1***", text)
    return text


def safe_file_stem(camera_id: str) -> str:
    """File name stem for a camera's output.

    Ids that already match ``CAMERA_ID_RE`` are used as-is. Anything else is
    slugged and suffixed with a short hash of the full id, so two ids that
    slug to the same text still get distinct files.
    """
    value = str(camera_id)
    if CAMERA_ID_RE.fullmatch(value):
        return value
    slug = UNSAFE_FILE_CHARS_RE.sub("-", value).strip("-._")[:48] or "camera"
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()[:10]
    return f"{slug}-{digest}"
