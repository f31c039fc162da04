# formrelay/domain/request.py
from __future__ import annotations

import logging
import re
from typing import Any, Mapping
from urllib.parse import parse_qs, urlparse

from .types import Source

log = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[a-f0-9]{32}$")

_WHATSAPP_FIELDS = ("call_status", "call_duration", "wa_verified")
_TILDA_FIELDS = ("formid", "Name", "Phone")


def _header(headers: Mapping[str, str] | None, name: str) -> str | None:
    if not headers:
        return None
    for k, v in headers.items():
        if k.lower() == name.lower():
            return v
    return None


def determine_source(data: Mapping[str, Any] | None, headers: Mapping[str, str] | None = None) -> str:
    """
    Classify a POST body. Explicit `source` wins, then field sniffing,
    then the WhatsApp bot's HTTP client signature.
    """
    if not data:
        return Source.unknown.value

    if data.get("source"):
        return str(data["source"]).lower()
    if any(data.get(f) is not None for f in _WHATSAPP_FIELDS):
        return Source.whatsapp.value
    if any(data.get(f) for f in _TILDA_FIELDS):
        return Source.tilda.value

    ua = _header(headers, "user-agent")
    if ua and "Apache-HttpClient" in ua:
        return Source.whatsapp.value

    return Source.unknown.value


def extract_verification_key(
    query: Mapping[str, str] | None,
    headers: Mapping[str, str] | None = None,
) -> str | None:
    key = (query or {}).get("key")

    if not key:
        webhook_url = _header(headers, "x-webhook-url")
        if webhook_url:
            values = parse_qs(urlparse(webhook_url).query).get("key")
            key = values[0] if values else None

    if key and not _KEY_RE.match(key):
        log.warning("Invalid verification key format: %r", key)
        return None

    return key or None


def extract_domain_from_referer(headers: Mapping[str, str] | None) -> str | None:
    referer = _header(headers, "referer")
    if not referer:
        return None

    host = urlparse(referer).hostname
    if not host:
        log.warning("Failed to parse referer: %r", referer)
        return None
    return host.replace("www.", "", 1)
