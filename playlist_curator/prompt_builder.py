"""Prompt construction and response parsing for the prompt-based backends."""

import json
import random
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from .models import PromptConfig, Track

PREAMBLE = (
    "You are a music playlist curator. Based on the user's request, "
    "select songs from the provided library that best match their description.\n\n"
)

OUTPUT_INSTRUCTIONS = (
    "\nRespond with ONLY a JSON array of song numbers that match "
    "the user's request. Select 10-30 songs that best fit the description. "
    "Example response: [1, 5, 12, 23, 45]\n"
)


def sample_indices(library_size: int, limit: int, rng: Optional[random.Random] = None) -> List[int]:
    """All indices in order, or a sorted uniform sample of ``limit`` of them."""
    if library_size <= limit:
        return list(range(library_size))
    rng = rng or random.Random()
    return sorted(rng.sample(range(library_size), limit))


def format_track_row(number: int, track: Track, config: PromptConfig) -> str:
    line = f"{number}. {track.display_name}"
    if config.include_artist and track.artist:
        line += f" - {track.artist}"
    if config.include_album and track.album:
        line += f" ({track.album})"
    if config.include_genre and track.genre:
        line += f" [{track.genre}]"
    if config.include_year and track.year is not None:
        line += f" {{{track.year}}}"
    return line


def build_prompt(
    user_request: str,
    library: Sequence[Track],
    config: Optional[PromptConfig] = None,
    rng: Optional[random.Random] = None,
) -> Tuple[str, List[int]]:
    """
    Render the curation prompt.

    Returns the prompt text and the sampled indices: ``sampled[n - 1]`` is
    the absolute library index of visible row ``n``.
    """
    config = config or PromptConfig()
    sampled = sample_indices(len(library), config.max_tracks_in_prompt, rng)

    parts = [PREAMBLE, f'User\'s request: "{user_request}"\n\n']
    if len(sampled) < len(library):
        parts.append(
            f"Note: Your library has {len(library)} tracks. "
            f"Showing a random sample of {config.max_tracks_in_prompt}.\n\n"
        )

    parts.append("Available songs in library:\n")
    for row, idx in enumerate(sampled, 1):
        parts.append(format_track_row(row, library[idx], config) + "\n")
    parts.append(OUTPUT_INSTRUCTIONS)

    return "".join(parts), sampled


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _extract_array(response_text: str) -> Optional[list]:
    """Parse the text between the first '[' and the last ']' as a JSON list."""
    start = response_text.find("[")
    end = response_text.rfind("]")
    if start == -1 or end == -1 or start >= end:
        logger.warning("Could not find JSON array in response")
        logger.debug(f"Response: {response_text}")
        return None

    try:
        parsed = json.loads(response_text[start:end + 1])
    except ValueError as e:
        logger.warning(f"Error parsing AI response: {e}")
        return None

    if not isinstance(parsed, list):
        return None
    return parsed


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_json_response(response_text: str, sampled_indices: Sequence[int]) -> List[int]:
    """
    Map the model's 1-based row numbers back to absolute library indices.

    Out-of-range, non-integer and duplicate entries are dropped; an empty
    list means nothing usable was found.
    """
    values = _extract_array(response_text)
    if not values:
        return []

    playlist: List[int] = []
    seen = set()
    for value in values:
        if not _is_int(value) or not 1 <= value <= len(sampled_indices):
            continue
        absolute = sampled_indices[value - 1]
        if absolute in seen:
            continue
        seen.add(absolute)
        playlist.append(absolute)

    dropped = len(values) - len(playlist)
    if dropped:
        logger.debug(f"Dropped {dropped} invalid or duplicate entries from response")
    return playlist


def parse_absolute_indices(response_text: str, library_size: int) -> List[int]:
    """Same extraction, for answers that are already 0-based library indices."""
    values = _extract_array(response_text)
    if not values:
        return []

    playlist: List[int] = []
    seen = set()
    for value in values:
        if _is_int(value) and 0 <= value < library_size and value not in seen:
            seen.add(value)
            playlist.append(value)
    return playlist
