"""Payload normalization — unwrap JSON smuggled inside a string field.

Workflow engines sometimes double-encode the body they post, so the relay
receives ``{"oi": "{\\"message\\": \\"hello\\"}"}`` instead of
``{"message": "hello"}``.  :func:`normalize` promotes the inner document
when it looks like a chat payload; :func:`extract_display_text` then picks
the human-readable text out of it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

# Probed in this order, both for unwrap detection and for display text
MESSAGE_FIELDS = ("message", "text", "output")


def to_wire(payload: Any) -> str:
    """Serialize a payload to the compact form sent over the push channel.

    Non-finite floats are rejected, and lone surrogates (legal as JSON
    escapes, unencodable as UTF-8) are written back as ``\\uXXXX`` escapes.
    """
    text = json.dumps(payload, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    return text.encode("utf-8", "backslashreplace").decode("utf-8")


def _looks_like_message(candidate: Any) -> bool:
    return isinstance(candidate, dict) and any(candidate.get(f) for f in MESSAGE_FIELDS)


def normalize(raw: Any) -> Any:
    """Return ``raw`` with at most one level of stringified JSON unwrapped.

    Only top-level string fields starting with ``{`` are candidates.  The
    first one that parses to an object carrying ``message``, ``text`` or
    ``output`` replaces the whole payload.  Not recursive.
    """
    if not isinstance(raw, dict):
        return raw

    for key, value in raw.items():
        if not isinstance(value, str) or not value.strip().startswith("{"):
            continue
        try:
            inner = json.loads(value, parse_constant=str)
        except ValueError:
            continue
        if _looks_like_message(inner):
            logger.info("Nested JSON detected in field '%s', promoting it to payload", key)
            return inner
    return raw


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return to_wire(value)
    return str(value)


def extract_display_text(payload: Any) -> str:
    """Pick the chat text out of a payload; falls back to its JSON form."""
    if isinstance(payload, dict):
        for field in MESSAGE_FIELDS:
            value = payload.get(field)
            if value:
                return _as_text(value)
    try:
        return to_wire(payload)
    except (TypeError, ValueError):
        return str(payload)
