"""Genre reference documents — static production notes, one markdown file per genre.

The key set is closed: only the genres listed in ``GENRE_PROFILES`` are
advertised to the model and readable through the ``read_genre`` tool.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from importlib import resources


@dataclass(frozen=True)
class GenreProfile:
    bpm: int
    key: str
    vibe: str


GENRE_PROFILES: dict[str, GenreProfile] = {
    "house": GenreProfile(bpm=120, key="Cm", vibe="groovy, four-on-floor, rolling bassline"),
    "techno": GenreProfile(bpm=130, key="Am", vibe="dark, hypnotic, industrial, driving"),
    "dnb": GenreProfile(bpm=174, key="Dm", vibe="fast breaks, rolling bass, liquid or neuro"),
    "trap": GenreProfile(bpm=140, key="Gm", vibe="half-time, 808s, hi-hat rolls"),
    "dubstep": GenreProfile(bpm=140, key="Fm", vibe="half-time, wobble bass, heavy drops"),
    "ambient": GenreProfile(bpm=70, key="D", vibe="atmospheric, evolving pads, no drums"),
    "trance": GenreProfile(bpm=138, key="Am", vibe="euphoric, arpeggios, big buildups"),
    "lofi": GenreProfile(bpm=85, key="C", vibe="jazzy chords, swing, dusty, warm"),
    "psytrance": GenreProfile(bpm=145, key="Em", vibe="rolling bassline, psychedelic, hypnotic"),
    "synthwave": GenreProfile(bpm=118, key="Fm", vibe="80s nostalgia, arpeggios, gated reverb"),
}

AVAILABLE_GENRES: tuple[str, ...] = tuple(GENRE_PROFILES)


@lru_cache(maxsize=None)
def load_genre(key: str) -> str | None:
    """Return the markdown document for *key*, or None for an unknown genre."""
    if key not in GENRE_PROFILES:
        return None
    return resources.files(__name__).joinpath(f"{key}.md").read_text(encoding="utf-8")
