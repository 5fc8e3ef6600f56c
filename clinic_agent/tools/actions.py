"""Pull the fenced ``create_appointment`` block out of a model reply.

The system prompt tells the model to append exactly one block like::

    ```json
    {"kind": "create_appointment", "patientName": "...", ...}
    ```

once it has collected every booking field.  :func:`extract_action` splits a
reply into the prose the patient should see and the parsed
:class:`~clinic_agent.models.BookingIntent` (or ``None``).
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from clinic_agent.models import CREATE_APPOINTMENT, BookingIntent

logger = logging.getLogger(__name__)

_ACTION_BLOCK_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_STRAY_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def strip_fences(text: str) -> str:
    """Remove leftover fence markers and collapse the gaps they leave."""
    cleaned = _STRAY_FENCE_RE.sub("", text)
    return _BLANK_LINES_RE.sub("\n\n", cleaned).strip()


def extract_action(text: str) -> tuple[str, BookingIntent | None]:
    """Return ``(clean_text, intent)`` for a raw assistant reply.

    Only the first ``json`` fenced block is parsed.  Every such block is
    removed from the visible text whether or not it parses.  A payload that is not
    valid JSON, is not an object, declares another ``kind`` or misses a
    field yields ``None``.
    """
    match = _ACTION_BLOCK_RE.search(text)
    if match is None:
        return strip_fences(text), None

    clean_text = strip_fences(_ACTION_BLOCK_RE.sub("", text))
    payload = match.group(1)

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Ignoring unparseable action block: %.200s", payload)
        return clean_text, None

    if not isinstance(data, dict):
        logger.warning("Ignoring non-object action block: %.200s", payload)
        return clean_text, None

    # Older prompts used "action" as the discriminator.
    kind = data.get("kind", data.get("action"))
    if kind != CREATE_APPOINTMENT:
        logger.info("Ignoring action block of unknown kind %r", kind)
        return clean_text, None

    data = {k: v for k, v in data.items() if k not in ("kind", "action")}
    try:
        intent = BookingIntent.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "Ignoring incomplete create_appointment block (%d errors)",
            exc.error_count(),
        )
        return clean_text, None

    return clean_text, intent
