"""
Library Search Index

Read-only filtered lookups over the caller's track list.  This is the
surface the tool-calling backends expose to the model: every search returns
at most ``max_results`` indices but always reports the true number of
matches, so the model can tell when it should narrow a query.
"""

from typing import Callable, List, Optional, Sequence

from loguru import logger

from .models import SearchResult, Track

DEFAULT_MAX_RESULTS = 100


class LibrarySearch:
    """
    Wraps a library (borrowed, not copied) and answers substring and
    year-range queries by library index.
    """

    def __init__(self, library: Sequence[Track]):
        self.library = library

    def __len__(self) -> int:
        return len(self.library)

    # ------------------------------------------------------------------
    # Field searches
    # ------------------------------------------------------------------

    def search_by_artist(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> SearchResult:
        """Case-insensitive partial match on artist."""
        return self._search_field("artist", query, max_results)

    def search_by_genre(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> SearchResult:
        return self._search_field("genre", query, max_results)

    def search_by_album(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> SearchResult:
        return self._search_field("album", query, max_results)

    def search_by_title(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> SearchResult:
        return self._search_field("title", query, max_results)

    def search_by_year_range(
        self, start_year: int, end_year: int, max_results: int = DEFAULT_MAX_RESULTS
    ) -> SearchResult:
        """Inclusive on both ends. Tracks without a year never match."""
        return self._scan(
            lambda t: t.year is not None and start_year <= t.year <= end_year,
            max_results,
        )

    def _search_field(self, field: str, query: str, max_results: int) -> SearchResult:
        # An empty query matches every track that has the field set
        needle = (query or "").lower()

        def matches(track: Track) -> bool:
            value: Optional[str] = getattr(track, field)
            return value is not None and needle in value.lower()

        return self._scan(matches, max_results)

    def _scan(self, predicate: Callable[[Track], bool], max_results: int) -> SearchResult:
        cap = max(0, int(max_results))
        indices: List[int] = []
        total = 0
        for i, track in enumerate(self.library):
            if predicate(track):
                total += 1
                if len(indices) < cap:
                    indices.append(i)
        return SearchResult(indices=indices, total_matches=total)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def unique_artists(self) -> List[str]:
        return self._unique("artist")

    def unique_genres(self) -> List[str]:
        return self._unique("genre")

    def unique_albums(self) -> List[str]:
        return self._unique("album")

    def _unique(self, field: str) -> List[str]:
        values = {getattr(t, field) for t in self.library}
        return sorted(v for v in values if v)

    def overview(self, sample_size: int = 20) -> dict:
        """Counts plus small samples of artists and genres for the model."""
        artists = self.unique_artists()
        genres = self.unique_genres()
        albums = self.unique_albums()
        logger.debug(
            f"Library overview: {len(self.library)} tracks, {len(artists)} artists, "
            f"{len(genres)} genres, {len(albums)} albums"
        )
        return {
            "total_tracks": len(self.library),
            "unique_artists": len(artists),
            "unique_genres": len(genres),
            "unique_albums": len(albums),
            "sample_artists": artists[:sample_size],
            "sample_genres": genres[:sample_size],
        }

    # ------------------------------------------------------------------
    # Set operations on results (local, no re-query)
    # ------------------------------------------------------------------

    @staticmethod
    def intersect_results(a: SearchResult, b: SearchResult) -> SearchResult:
        """Indices of ``a`` that also appear in ``b``, in ``a``'s order."""
        b_set = set(b.indices)
        indices = [i for i in a.indices if i in b_set]
        return SearchResult(indices=indices, total_matches=len(indices))

    @staticmethod
    def union_results(a: SearchResult, b: SearchResult) -> SearchResult:
        """Sorted union of both index sets."""
        indices = sorted(set(a.indices) | set(b.indices))
        return SearchResult(indices=indices, total_matches=len(indices))
