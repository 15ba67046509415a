"""
Keyword Scoring Backend

Offline fallback that needs no model at all: the request is reduced to a
keyword set and every track is scored by weighted metadata matches.
"""

from typing import List, Optional, Sequence, Set, Tuple

from loguru import logger

from .backend import BackendKind, GenerationBackend, StreamSink
from .models import CurationError, FailureKind, Track

STOP_WORDS: Set[str] = {
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
    "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
    "to", "was", "will", "with", "songs", "music", "tracks", "playlist",
    # request filler
    "me", "my", "give", "some", "something", "want", "play", "please",
}

# Points per keyword hit, by field
WEIGHTS = {
    "artist": 5.0,
    "genre": 4.0,
    "album": 2.0,
    "title": 2.0,
    "year": 3.0,
}

RECENT_WORDS = {"recent", "new", "modern"}
CLASSIC_WORDS = {"classic", "old", "vintage"}
RECENT_FROM = 2015
CLASSIC_UNTIL = 1990


def normalize_text(text: str) -> str:
    """Lowercase, with every non-alphanumeric character turned into a space."""
    return "".join(c.lower() if c.isalnum() or c.isspace() else " " for c in text)


def extract_keywords(text: str) -> Set[str]:
    return {
        word for word in normalize_text(text).split()
        if len(word) >= 2 and word not in STOP_WORDS
    }


def matches_year(keyword: str, year: Optional[int]) -> bool:
    """Exact year, decade shorthand ("80s") or era words."""
    if year is None:
        return False
    year_str = str(year)

    if keyword == year_str:
        return True

    if len(keyword) == 3 and keyword[1] == "0" and keyword[2] == "s":
        if len(year_str) >= 3 and year_str[2] == keyword[0]:
            return True

    if keyword in RECENT_WORDS:
        return year >= RECENT_FROM
    if keyword in CLASSIC_WORDS:
        return year <= CLASSIC_UNTIL
    return False


def score_track(track: Track, keywords: Set[str]) -> Tuple[float, List[str]]:
    """Weighted score for one track plus the list of ``field:keyword`` hits."""
    fields = {
        "artist": normalize_text(track.artist or ""),
        "genre": normalize_text(track.genre or ""),
        "album": normalize_text(track.album or ""),
        "title": normalize_text(track.title or ""),
    }

    score = 0.0
    matches: List[str] = []
    for keyword in sorted(keywords):
        for field, value in fields.items():
            if value and keyword in value:
                score += WEIGHTS[field]
                matches.append(f"{field}:{keyword}")
        if matches_year(keyword, track.year):
            score += WEIGHTS["year"]
            matches.append(f"year:{keyword}")
    return score, matches


def describe_matches(matches: List[str], limit: int = 3) -> str:
    if not matches:
        return ""
    reason = "Matched: " + ", ".join(matches[:limit])
    if len(matches) > limit:
        reason += "..."
    return reason


class KeywordBackend(GenerationBackend):
    """Deterministic-ish keyword matching over artist/genre/album/title/year."""

    kind = BackendKind.KEYWORD

    def __init__(self, max_results: int = 50, min_score: float = 0.0):
        self.max_results = max_results
        self.min_score = min_score

    @property
    def name(self) -> str:
        return "Keyword Matching"

    def _select(
        self,
        user_request: str,
        library: Sequence[Track],
        sink: Optional[StreamSink],
        verbose: bool,
    ) -> List[int]:
        keywords = extract_keywords(user_request)
        if not keywords:
            raise CurationError(FailureKind.EMPTY_KEYWORD_SET, "No keywords found in prompt")

        logger.debug(f"Keywords: {', '.join(sorted(keywords))}")

        scored = []
        for i, track in enumerate(library):
            score, matches = score_track(track, keywords)
            if score > self.min_score:
                scored.append((i, score, matches))

        if not scored:
            raise CurationError(FailureKind.NO_KEYWORD_MATCHES, "No tracks matched the keywords")

        # sorted() is stable, so ties keep library order
        scored = sorted(scored, key=lambda s: s[1], reverse=True)[: self.max_results]

        if verbose:
            logger.info(f"Extracted keywords: {' '.join(sorted(keywords))}")
            for rank, (i, score, matches) in enumerate(scored[:10], 1):
                t = library[i]
                logger.info(
                    f"  {rank}. {t.artist or 'Unknown'} - {t.title or 'Unknown'} "
                    f"(score: {score:g}) [{describe_matches(matches)}]"
                )

        if sink is not None:
            sink.push(f"Matched {len(scored)} tracks for: {', '.join(sorted(keywords))}", True)

        return [i for i, _, _ in scored]
