"""Genre reference tool — returns production notes for a named genre.

Long documents are cut before they re-enter the model's context: at the
first FX/structure heading when one appears early enough, otherwise hard
at the character limit.
"""

from __future__ import annotations

import logging
import re

from langchain_core.tools import tool
from pydantic import BaseModel, Field

from studio.genres import AVAILABLE_GENRES, load_genre
from studio.tools import register

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 2_500

_CUT_HEADINGS = ("## FX Profile", "## Structure")
_OMITTED_NOTE = "\n(See full genre file for FX/structure details)"

# Overridden from config on startup and reload (see studio.main.apply_config).
_max_chars = DEFAULT_MAX_CHARS


def set_max_chars(limit: int) -> None:
    global _max_chars
    _max_chars = limit


def truncate_reference(content: str, limit: int = DEFAULT_MAX_CHARS) -> str:
    """Keep *content* under roughly *limit* characters."""
    if len(content) <= limit:
        return content

    result = ""
    for line in content.split("\n"):
        if line.startswith(_CUT_HEADINGS):
            return result + _OMITTED_NOTE
        result += line + "\n"
        if len(result) > limit:
            return result[:limit] + "\n..."
    return result


def normalize_genre(genre: str) -> str:
    return re.sub(r"[^a-z]", "", genre.lower())


class ReadGenreInput(BaseModel):
    genre: str = Field(
        default="",
        description=f"Genre name. Available: {', '.join(AVAILABLE_GENRES)}",
    )


@register
@tool("read_genre", args_schema=ReadGenreInput)
def read_genre(genre: str = "") -> str:
    """Read genre-specific production DNA (BPM, patterns, sounds). Call if user mentions a specific genre."""
    key = normalize_genre(genre)
    content = load_genre(key)
    if content is None:
        logger.info(f"Unknown genre requested: {genre!r}")
        return (
            f'Unknown genre "{key}". Available: {", ".join(AVAILABLE_GENRES)}. '
            f"Proceed with general electronic music style."
        )
    return truncate_reference(content, _max_chars)
