"""
Data Models for the Playlist Curator

Track records supplied by the caller, search results returned by the
library index, prompt configuration, and the result/failure types every
generation backend returns.
"""

from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


# ---------------------------------------------------------------------------
# Track models
# ---------------------------------------------------------------------------

class Track(BaseModel):
    """A single audio item's descriptive metadata plus its location."""

    model_config = ConfigDict(frozen=True)

    filepath: str = Field(..., description="Absolute path or remote-storage reference (unique)")
    filename: str = Field(..., description="Filename only, used when the title tag is missing")
    title: Optional[str] = Field(None, description="Track title")
    artist: Optional[str] = Field(None, description="Track artist")
    album: Optional[str] = Field(None, description="Album name")
    genre: Optional[str] = Field(None, description="Musical genre")
    year: Optional[int] = Field(None, description="Release year")
    duration_ms: int = Field(0, ge=0, description="Duration in milliseconds")
    file_mtime: int = Field(0, description="Last modification time (epoch seconds)")
    remote_hash: Optional[str] = Field(None, description="Content hash for remote files")
    remote_rev: Optional[str] = Field(None, description="Revision id for remote files")

    @property
    def display_name(self) -> str:
        return self.title if self.title else self.filename

    def duration_formatted(self) -> str:
        seconds = self.duration_ms // 1000
        if seconds <= 0:
            return "0:00"
        return f"{seconds // 60}:{seconds % 60:02d}"

    def to_json(self) -> Dict[str, Any]:
        """Serialise using the metadata-cache field layout (nulls kept)."""
        return {
            "filepath": self.filepath,
            "filename": self.filename,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "genre": self.genre,
            "year": self.year,
            "duration_ms": self.duration_ms,
            "file_mtime": self.file_mtime,
            "dropbox_hash": self.remote_hash,
            "dropbox_rev": self.remote_rev,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> Optional["Track"]:
        """Build a Track from a cache record, or None if the record is invalid."""
        if not isinstance(data, dict):
            return None
        if "filepath" not in data or "filename" not in data:
            return None
        if "duration_ms" not in data or "file_mtime" not in data:
            return None
        try:
            return cls(
                filepath=data["filepath"],
                filename=data["filename"],
                title=data.get("title"),
                artist=data.get("artist"),
                album=data.get("album"),
                genre=data.get("genre"),
                year=data.get("year"),
                duration_ms=data["duration_ms"],
                file_mtime=data["file_mtime"],
                remote_hash=data.get("dropbox_hash"),
                remote_rev=data.get("dropbox_rev"),
            )
        except ValidationError:
            return None


class SearchResult(BaseModel):
    """Indices into the library (capped) plus the true match count."""

    indices: List[int] = Field(default_factory=list, description="Library indices, at most max_results")
    total_matches: int = Field(0, ge=0, description="Matches across the whole library, ignoring the cap")

    @property
    def found(self) -> int:
        return len(self.indices)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class PromptConfig(BaseModel):
    """Controls how much of the library is rendered into a prompt."""

    max_tracks_in_prompt: int = Field(1500, ge=1, description="Rows shown to the model before sampling kicks in")
    include_artist: bool = True
    include_album: bool = True
    include_genre: bool = True
    include_year: bool = True


# ---------------------------------------------------------------------------
# Results and failures
# ---------------------------------------------------------------------------

class FailureKind(str, Enum):
    EMPTY_LIBRARY = "empty_library"
    EMPTY_KEYWORD_SET = "empty_keyword_set"
    NO_KEYWORD_MATCHES = "no_keyword_matches"
    MISSING_CREDENTIAL = "missing_credential"
    TRANSPORT_FAILURE = "transport_failure"
    HTTP_ERROR = "http_error"
    MALFORMED_RESPONSE_ENVELOPE = "malformed_response_envelope"
    NO_PARSEABLE_ARRAY = "no_parseable_array"
    EMPTY_FINAL_SELECTION = "empty_final_selection"
    TURN_BUDGET_EXCEEDED = "turn_budget_exceeded"
    PROMPT_TOO_LARGE_FOR_CONTEXT = "prompt_too_large_for_context"
    MODEL_LOAD_FAILURE = "model_load_failure"


# Which stage a failure belongs to, for user-facing messages
FAILURE_STAGES: Dict[FailureKind, str] = {
    FailureKind.EMPTY_LIBRARY: "library",
    FailureKind.EMPTY_KEYWORD_SET: "keywords",
    FailureKind.NO_KEYWORD_MATCHES: "empty result",
    FailureKind.MISSING_CREDENTIAL: "credentials",
    FailureKind.TRANSPORT_FAILURE: "network",
    FailureKind.HTTP_ERROR: "network",
    FailureKind.MALFORMED_RESPONSE_ENVELOPE: "parse",
    FailureKind.NO_PARSEABLE_ARRAY: "parse",
    FailureKind.EMPTY_FINAL_SELECTION: "empty result",
    FailureKind.TURN_BUDGET_EXCEEDED: "turn budget",
    FailureKind.PROMPT_TOO_LARGE_FOR_CONTEXT: "local model",
    FailureKind.MODEL_LOAD_FAILURE: "local model",
}


class CurationError(Exception):
    """Raised inside a backend; converted to a failed GenerationResult at its boundary."""

    def __init__(self, kind: FailureKind, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status


class GenerationError(BaseModel):
    kind: FailureKind
    message: str = ""
    status: Optional[int] = Field(None, description="HTTP status for http_error failures")

    @property
    def stage(self) -> str:
        return FAILURE_STAGES.get(self.kind, "unknown")


class GenerationResult(BaseModel):
    """Ordered absolute library indices, or a failure describing which stage broke."""

    backend: str = ""
    indices: List[int] = Field(default_factory=list)
    error: Optional[GenerationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def stage(self) -> Optional[str]:
        return self.error.stage if self.error else None

    @classmethod
    def success(cls, backend: str, indices: List[int]) -> "GenerationResult":
        return cls(backend=backend, indices=list(indices))

    @classmethod
    def failure(cls, backend: str, exc: CurationError) -> "GenerationResult":
        return cls(
            backend=backend,
            error=GenerationError(kind=exc.kind, message=exc.message, status=exc.status),
        )
