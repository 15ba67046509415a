"""
Caller-side orchestration: validate the backend, generate, and turn the
returned indices back into Track records.
"""

import random
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field

from .backend import GenerationBackend, SinkLike
from .local_model import LocalModelBackend
from .models import CurationError, FailureKind, GenerationResult, Track


class CurationOutcome(BaseModel):
    result: GenerationResult
    tracks: List[Track] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.result.ok and bool(self.tracks)


def tracks_for_indices(indices: Sequence[int], library: Sequence[Track]) -> List[Track]:
    """Library records for the given indices, skipping any out of range."""
    return [library[i] for i in indices if 0 <= i < len(library)]


def curate(
    user_request: str,
    library: Sequence[Track],
    backend: GenerationBackend,
    stream_sink: SinkLike = None,
    verbose: bool = False,
    shuffle: bool = False,
    rng: Optional[random.Random] = None,
) -> CurationOutcome:
    """Run one generation and return both the raw result and the picked tracks."""
    ok, message = backend.validate()
    if not ok:
        kind = (
            FailureKind.MODEL_LOAD_FAILURE
            if isinstance(backend, LocalModelBackend)
            else FailureKind.MISSING_CREDENTIAL
        )
        logger.error(f"{backend.name}: {message}")
        return CurationOutcome(result=GenerationResult.failure(backend.name, CurationError(kind, message)))

    result = backend.generate(user_request, library, stream_sink, verbose)
    if not result.ok:
        return CurationOutcome(result=result)

    tracks = tracks_for_indices(result.indices, library)
    if shuffle:
        (rng or random.Random()).shuffle(tracks)
        logger.debug("Playlist shuffled")

    logger.info(f"Generated AI playlist with {len(tracks)} tracks")
    return CurationOutcome(result=result, tracks=tracks)
