"""
Generation Backend Contract

Every variant (remote prompt, remote tool-calling, local model, keyword
scoring) implements the same capability: ``name``, ``validate()`` and
``generate()``.  The shared ``generate()`` here is the error boundary: stage
failures raised as ``CurationError`` come back as a failed
``GenerationResult``; anything else propagates.
"""

import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

from loguru import logger

from .models import CurationError, FailureKind, GenerationResult, Track


class BackendKind(str, Enum):
    CLAUDE = "claude"
    CHATGPT = "chatgpt"
    CLAUDE_PROMPT = "claude_prompt"
    CHATGPT_PROMPT = "chatgpt_prompt"
    LLAMACPP = "llamacpp"
    KEYWORD = "keyword"


# ---------------------------------------------------------------------------
# Streaming sinks
# ---------------------------------------------------------------------------

@runtime_checkable
class StreamSink(Protocol):
    """Receives incremental text (is_final=False) and then the complete text (is_final=True)."""

    def push(self, chunk: str, is_final: bool) -> None:
        ...


class CallbackSink:
    """Adapts a plain ``callback(chunk, is_final)`` to the sink protocol."""

    def __init__(self, callback: Callable[[str, bool], None]):
        self._callback = callback

    def push(self, chunk: str, is_final: bool) -> None:
        self._callback(chunk, is_final)


class CollectingSink:
    """Records every chunk; handy for callers that want the raw model text."""

    def __init__(self) -> None:
        self.chunks: List[str] = []
        self.final_text: Optional[str] = None

    def push(self, chunk: str, is_final: bool) -> None:
        if is_final:
            self.final_text = chunk
        else:
            self.chunks.append(chunk)


class ConsoleSink:
    """Echoes streamed tokens to stderr, newline on completion."""

    def __init__(self, stream=None) -> None:
        self.stream = stream or sys.stderr

    def push(self, chunk: str, is_final: bool) -> None:
        if is_final:
            self.stream.write("\n")
        else:
            self.stream.write(chunk)
        self.stream.flush()


SinkLike = Union[StreamSink, Callable[[str, bool], None], None]


def as_sink(sink: SinkLike) -> Optional[StreamSink]:
    if sink is None or isinstance(sink, StreamSink):
        return sink
    return CallbackSink(sink)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class GenerationBackend(ABC):
    """Turns a listening request plus a library into ordered library indices."""

    kind: BackendKind

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name for display and logging."""

    def validate(self) -> Tuple[bool, str]:
        """Check the backend is usable (credentials, model file, ...)."""
        return True, ""

    def generate(
        self,
        user_request: str,
        library: Sequence[Track],
        stream_sink: SinkLike = None,
        verbose: bool = False,
    ) -> GenerationResult:
        if not library:
            logger.error(f"{self.name}: no tracks in library")
            return GenerationResult.failure(
                self.name, CurationError(FailureKind.EMPTY_LIBRARY, "No tracks in library")
            )

        logger.info(f"{self.name}: generating playlist for prompt: '{user_request}'")
        logger.info(f"Library size: {len(library)} tracks")

        try:
            indices = self._select(user_request, library, as_sink(stream_sink), verbose)
            if not indices:
                raise CurationError(FailureKind.EMPTY_FINAL_SELECTION, "Generated empty playlist")
        except CurationError as e:
            logger.error(f"{self.name} failed ({e.kind.value}): {e.message}")
            return GenerationResult.failure(self.name, e)

        logger.info(f"Successfully generated playlist with {len(indices)} tracks")
        return GenerationResult.success(self.name, indices)

    @abstractmethod
    def _select(
        self,
        user_request: str,
        library: Sequence[Track],
        sink: Optional[StreamSink],
        verbose: bool,
    ) -> List[int]:
        """Return absolute library indices or raise CurationError."""
