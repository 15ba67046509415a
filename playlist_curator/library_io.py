"""
Track supplier and playlist output.

Libraries are read from the JSON metadata cache written by the scanner
(``{"version": 1, "library_path": ..., "tracks": [...]}``) or from a bare
JSON array of track records.  Curated playlists are written as plain text
(one path per line) or as JSON.
"""

import json
from pathlib import Path
from typing import List, Optional, Sequence, Union

from loguru import logger

from .models import Track

CACHE_VERSION = 1
PLAYLIST_VERSION = "1.0"


def _parse_tracks(records: list) -> List[Track]:
    tracks: List[Track] = []
    for record in records:
        track = Track.from_json(record)
        if track is None:
            logger.warning("Skipping invalid track record")
            continue
        tracks.append(track)
    return tracks


def load_library(path: Union[str, Path]) -> List[Track]:
    """Read a library file. Raises ValueError on a malformed or mismatched file."""
    path = Path(path)
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)

    if isinstance(data, list):
        records = data
    elif isinstance(data, dict):
        if data.get("version") != CACHE_VERSION:
            raise ValueError(f"Unsupported library cache version: {data.get('version')!r}")
        records = data.get("tracks")
        if not isinstance(records, list):
            raise ValueError("Library cache has no tracks array")
    else:
        raise ValueError("Library file must contain a JSON array or cache object")

    tracks = _parse_tracks(records)
    logger.info(f"Loaded {len(tracks)} tracks from {path}")
    return tracks


def save_library(path: Union[str, Path], tracks: Sequence[Track], library_path: str = "") -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "version": CACHE_VERSION,
        "library_path": library_path,
        "tracks": [t.to_json() for t in tracks],
    }
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
    logger.debug(f"Saved {len(tracks)} tracks to {path}")


class Playlist:
    """An ordered list of curated tracks with text and JSON serialisation."""

    def __init__(self, tracks: Sequence[Track]):
        self.tracks: List[Track] = list(tracks)

    @classmethod
    def from_tracks(cls, tracks: Sequence[Track]) -> "Playlist":
        return cls(tracks)

    @classmethod
    def from_json(cls, content: str) -> Optional["Playlist"]:
        try:
            data = json.loads(content)
        except ValueError as e:
            logger.error(f"Error parsing playlist JSON: {e}")
            return None

        if not isinstance(data, dict) or "version" not in data:
            logger.error("Playlist missing version field")
            return None
        if not isinstance(data.get("tracks"), list):
            logger.error("Playlist missing or invalid tracks array")
            return None

        tracks = _parse_tracks(data["tracks"])
        if not tracks:
            logger.error("Playlist contains no valid tracks")
            return None
        return cls(tracks)

    def __len__(self) -> int:
        return len(self.tracks)

    @property
    def paths(self) -> List[str]:
        return [t.filepath for t in self.tracks]

    def to_text(self) -> str:
        return "\n".join(self.paths)

    def to_json(self) -> str:
        return json.dumps(
            {"version": PLAYLIST_VERSION, "tracks": [t.to_json() for t in self.tracks]},
            indent=2,
        )

    def save(self, path: Union[str, Path], fmt: Optional[str] = None) -> Path:
        """Write as JSON when ``fmt == 'json'`` or the name ends in .json, else text."""
        path = Path(path)
        fmt = fmt or ("json" if path.suffix.lower() == ".json" else "text")
        content = self.to_json() if fmt == "json" else self.to_text() + "\n"
        path.write_text(content, encoding="utf-8")
        logger.info(f"Playlist saved to: {path}")
        return path
