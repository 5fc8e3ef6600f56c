"""FAQ knowledge base for the system prompt.

Loads ``KNOWLEDGE_BASE.md`` (shipped inside the package) once at import and
renders it as a compact question/answer table that is injected into every
chat prompt.  The file is small enough that no retrieval step is needed.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_KB_PATH = Path(__file__).resolve().parent.parent / "KNOWLEDGE_BASE.md"


def _load_knowledge_base(path: Path = _KB_PATH) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("KNOWLEDGE_BASE.md not found at %s", path)
        return ""


def split_into_sections(content: str) -> list[dict[str, str]]:
    """Split the markdown FAQ into ``{"heading", "body"}`` pairs.

    Each ``### `` heading is a question; the text up to the next heading
    (minus the trailing ``---`` separator) is its answer.
    """
    sections: list[dict[str, str]] = []
    parts = re.split(r"###\s+(.+?)(?=\n)", content)

    # parts[0] is the preamble, then alternating heading/body pairs
    for i in range(1, len(parts), 2):
        heading = parts[i].strip()
        body = parts[i + 1].strip() if i + 1 < len(parts) else ""
        body = re.sub(r"\n---\s*$", "", body).strip()
        sections.append({"heading": heading, "body": body})

    return sections


def render_faq_table(sections: list[dict[str, str]]) -> str:
    """Render sections as a two-column markdown table."""
    if not sections:
        return "(FAQ unavailable; answer general questions briefly and suggest calling the clinic.)"
    lines = ["| Question | Answer |", "|---|---|"]
    for section in sections:
        answer = " ".join(section["body"].split()).replace("|", "/")
        lines.append(f"| {section['heading']} | {answer} |")
    return "\n".join(lines)


_FAQ_SECTIONS: list[dict[str, str]] = split_into_sections(_load_knowledge_base())
_FAQ_TABLE: str = render_faq_table(_FAQ_SECTIONS)


def get_faq_table() -> str:
    return _FAQ_TABLE
