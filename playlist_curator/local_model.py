"""
Local Model Backend (llama.cpp)

Runs a GGUF model in-process through llama-cpp-python.  The model and its
inference context are loaded on first use and freed by ``close()``; one
backend instance serves one ``generate()`` at a time.
"""

import codecs
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from loguru import logger

from .backend import BackendKind, GenerationBackend, StreamSink
from .config import LocalModelConfig
from .models import CurationError, FailureKind, PromptConfig, Track
from .prompt_builder import build_prompt, parse_json_response


def load_llama(config: LocalModelConfig):
    """Default loader: CPU-only llama.cpp model plus context."""
    from llama_cpp import Llama

    return Llama(
        model_path=config.model_path,
        n_ctx=config.context_size,
        n_threads=config.threads,
        n_threads_batch=config.threads,
        n_gpu_layers=0,
        verbose=False,
    )


class LocalModelBackend(GenerationBackend):
    kind = BackendKind.LLAMACPP

    def __init__(
        self,
        config: LocalModelConfig,
        loader: Optional[Callable[[LocalModelConfig], Any]] = None,
    ):
        self.config = config
        self._loader = loader or load_llama
        self._llm = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return f"llama.cpp ({Path(self.config.model_path).name})"

    @property
    def initialized(self) -> bool:
        return self._llm is not None

    def validate(self) -> Tuple[bool, str]:
        path = Path(self.config.model_path)
        if not self.config.model_path or not path.exists():
            return False, f"Model file not found: {self.config.model_path}"
        if not path.is_file():
            return False, f"Model path is not a file: {self.config.model_path}"
        return True, ""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load the model; calling again once loaded does nothing."""
        if self._llm is not None:
            logger.debug("Model already initialized")
            return

        logger.info("Initializing llama.cpp backend")
        logger.debug(
            f"Loading model from: {self.config.model_path} "
            f"(context {self.config.context_size}, {self.config.threads} threads)"
        )
        try:
            self._llm = self._loader(self.config)
        except ImportError as e:
            raise CurationError(
                FailureKind.MODEL_LOAD_FAILURE,
                f"llama-cpp-python is not available ({e}). Install playlist-curator[local]",
            ) from e
        except (OSError, ValueError, RuntimeError) as e:
            raise CurationError(
                FailureKind.MODEL_LOAD_FAILURE,
                f"Failed to load model from {self.config.model_path}: {e}",
            ) from e
        if self._llm is None:
            raise CurationError(FailureKind.MODEL_LOAD_FAILURE, f"Failed to load model from {self.config.model_path}")
        logger.info("llama.cpp backend initialized successfully")

    def close(self) -> None:
        if getattr(self, "_llm", None) is None:
            return
        close = getattr(self._llm, "close", None)
        if close is not None:
            close()
        self._llm = None
        logger.debug("llama.cpp backend released")

    def __enter__(self) -> "LocalModelBackend":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __del__(self):
        self.close()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _select(
        self,
        user_request: str,
        library: Sequence[Track],
        sink: Optional[StreamSink],
        verbose: bool,
    ) -> List[int]:
        prompt_config = PromptConfig(max_tracks_in_prompt=self.config.max_tracks_in_prompt)
        prompt, sampled = build_prompt(user_request, library, prompt_config)

        logger.debug(f"Sampled {len(sampled)} tracks from {len(library)} total tracks")
        logger.debug(f"AI Prompt:\n{prompt}")
        if verbose:
            logger.info(f"AI Prompt:\n{prompt}")

        with self._lock:
            self.initialize()
            text = self.generate_text(prompt, sink)

        if not text:
            raise CurationError(FailureKind.NO_PARSEABLE_ARRAY, "Failed to generate response")

        logger.debug(f"llama.cpp response:\n{text}")
        playlist = parse_json_response(text, sampled)
        if not playlist:
            raise CurationError(FailureKind.NO_PARSEABLE_ARRAY, "Could not parse playlist from response")
        return playlist

    def generate_text(self, prompt: str, sink: Optional[StreamSink] = None) -> str:
        """Token-by-token generation, streaming each decoded piece to ``sink``."""
        llm = self._llm
        cfg = self.config

        tokens = llm.tokenize(prompt.encode("utf-8"), add_bos=True, special=True)
        if not tokens:
            raise CurationError(FailureKind.PROMPT_TOO_LARGE_FOR_CONTEXT, "Failed to tokenize prompt")
        logger.debug(f"Tokenized prompt into {len(tokens)} tokens")

        if len(tokens) >= cfg.context_size:
            raise CurationError(
                FailureKind.PROMPT_TOO_LARGE_FOR_CONTEXT,
                f"Prompt too long ({len(tokens)} tokens, max {cfg.context_size})",
            )

        llm.reset()
        llm.eval(tokens)

        n_ctx = llm.n_ctx()
        eos = llm.token_eos()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pieces: List[str] = []
        n_cur = len(tokens)

        for n_generated in range(cfg.max_tokens):
            # top-k, then nucleus, then temperature, then the final draw
            token = llm.sample(top_k=cfg.top_k, top_p=cfg.top_p, min_p=0.0, temp=cfg.temperature)
            if token == eos:
                logger.debug(f"End of generation token received after {n_generated} tokens")
                break

            piece = decoder.decode(llm.detokenize([token]))
            if piece:
                pieces.append(piece)
                if sink is not None:
                    sink.push(piece, False)

            if n_cur >= n_ctx:
                logger.warning("Reached context limit")
                break

            llm.eval([token])
            n_cur += 1

        tail = decoder.decode(b"", final=True)
        if tail:
            pieces.append(tail)
        text = "".join(pieces)

        if sink is not None:
            sink.push(text, True)

        if not text:
            logger.warning("Generated text is empty - model may have immediately produced EOS token")
        return text
