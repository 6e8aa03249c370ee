"""Parse unstructured release names into structured audiobook attributes.

parse() is pure and never raises: anything it cannot resolve is left as
None / AudioFormat.UNKNOWN. The step order is fixed (normalize, format,
bitrate, year, abridged flag, title candidate, author/title split) because
later steps read the output of earlier ones.
"""

import re

from loguru import logger

from .models import AudioFormat, ParsedAttributes

log = logger.bind(stage="parser")

_EXTENSION = re.compile(r"\.[A-Za-z0-9]{1,5}$")
_SEPARATORS = re.compile(r"[.\-_\[\]()]")

# Lowest priority first: a later match overrides an earlier one
_FORMAT_MARKERS: tuple[tuple[AudioFormat, re.Pattern[str]], ...] = (
    (AudioFormat.MP3, re.compile(r"mp3", re.IGNORECASE)),
    (AudioFormat.M4B, re.compile(r"m4b", re.IGNORECASE)),
    (AudioFormat.FLAC, re.compile(r"flac", re.IGNORECASE)),
)

_BITRATE = re.compile(r"(\d{2,3})\s*kbps", re.IGNORECASE)
_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")
_SIZE = re.compile(r"\b\d+\s*[gm]b\b", re.IGNORECASE)
_ABRIDGED = re.compile(r"\babridged\b", re.IGNORECASE)
_UNABRIDGED = re.compile(r"\bunabridged\b", re.IGNORECASE)
_NARRATOR = re.compile(
    r"\(?\s*\b(?:read|narrated)\s+by\s+([^()\[\]]+?)\s*(?:\)|$)",
    re.IGNORECASE,
)

_NOISE_WORDS = frozenset(
    {
        "audiobook",
        "audio",
        "book",
        "unabridged",
        "abridged",
        "complete",
        "series",
        "mp3",
        "m4b",
        "flac",
        "kbps",
        "vbr",
        "cbr",
        "retail",
    }
)

# Tried in order, first match wins
_AUTHOR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(.+?)\s+-\s+(.+)$"),  # Author - Title
    re.compile(r"^(.+?)\s+by\s+(.+)$", re.IGNORECASE),  # Title by Author
    re.compile(r"^(.+?)\s*\((.+?)\)"),  # Title (Author)
)

_MAX_AUTHOR_WORDS = 3


def normalize(raw: str) -> str:
    """Strip the extension, turn separators into spaces, collapse whitespace."""
    cleaned = _EXTENSION.sub("", raw)
    cleaned = _SEPARATORS.sub(" ", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def detect_format(raw: str) -> AudioFormat:
    found = AudioFormat.UNKNOWN
    for audio_format, pattern in _FORMAT_MARKERS:
        if pattern.search(raw):
            found = audio_format
    return found


def parse(raw: str) -> ParsedAttributes:
    """Parse a release name or archive title into ParsedAttributes."""
    cleaned = normalize(raw)
    audio_format = detect_format(raw)

    bitrate_match = _BITRATE.search(raw)
    bitrate = int(bitrate_match.group(1)) if bitrate_match else None

    year_match = _YEAR.search(cleaned)
    year = int(year_match.group(0)) if year_match else None

    is_abridged = bool(_ABRIDGED.search(cleaned)) and not _UNABRIDGED.search(cleaned)

    fragment, narrator = _title_candidate(_EXTENSION.sub("", raw))

    title = _clean_part(fragment)
    author: str | None = None
    for pattern in _AUTHOR_PATTERNS:
        match = pattern.match(fragment)
        if not match:
            continue
        first = _clean_part(match.group(1))
        second = _clean_part(match.group(2))
        if not first or not second:
            continue
        if len(first.split()) <= _MAX_AUTHOR_WORDS:
            author, title = first, second
        else:
            title, author = first, second
        break

    if not title:
        title = cleaned or raw.strip()

    parsed = ParsedAttributes(
        title=title,
        author=author,
        narrator=narrator,
        year=year,
        audio_format=audio_format,
        bitrate_kbps=bitrate,
        is_abridged=is_abridged,
    )
    log.debug(f"parse({raw!r}) -> {parsed}")
    return parsed


def _title_candidate(base: str) -> tuple[str, str | None]:
    """Drop technical tokens and noise words, keeping ' - ' and parentheses.

    Returns the fragment for the author/title split and the narrator
    lifted out of a "read by" / "narrated by" phrase, if any.
    """
    fragment = re.sub(r"[._\[\]]", " ", base)
    fragment = _YEAR.sub("", fragment, count=1)
    fragment = _BITRATE.sub("", fragment, count=1)
    fragment = _SIZE.sub("", fragment)

    words = [w for w in fragment.split() if _keep_word(w)]
    fragment = " ".join(words)

    narrator = None
    narrator_match = _NARRATOR.search(fragment)
    if narrator_match:
        narrator = _clean_part(narrator_match.group(1)) or None
        fragment = fragment[: narrator_match.start()] + fragment[narrator_match.end() :]

    fragment = re.sub(r"\(\s*\)", "", fragment)
    fragment = re.sub(r"\s+", " ", fragment)
    fragment = re.sub(r"^[\s\-)]+|[\s\-(]+$", "", fragment)
    return fragment, narrator


def _keep_word(word: str) -> bool:
    if word in ("-", "(", ")"):
        return True
    core = word.strip("()-")
    if not core:
        return False
    return core.lower() not in _NOISE_WORDS


def _clean_part(part: str) -> str:
    part = _SEPARATORS.sub(" ", part)
    return re.sub(r"\s+", " ", part).strip()
