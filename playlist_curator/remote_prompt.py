"""
Single-Shot Remote Prompt Backend

Renders the (possibly sampled) library into one prompt, makes one API call
per attempt, and maps the row numbers in the answer back to library
indices.  Transport and HTTP failures get one retry after a fixed delay.
"""

import random
import time
from typing import Any, Callable, List, Optional, Sequence, Tuple

import anthropic
import openai
from loguru import logger

from .backend import BackendKind, GenerationBackend, StreamSink
from .config import RemoteConfig
from .models import CurationError, FailureKind, PromptConfig, Track
from .prompt_builder import build_prompt, parse_json_response
from .remote_clients import (
    is_retryable,
    make_anthropic_client,
    make_openai_client,
    raise_for_anthropic,
    raise_for_openai,
)
from .retry_helper import retry_with_delay


# ---------------------------------------------------------------------------
# Provider completions
# ---------------------------------------------------------------------------

class AnthropicCompletion:
    """One user message to the Messages API, text blocks joined as the answer."""

    provider = "Claude"
    key_env = "ANTHROPIC_API_KEY"
    key_url = "https://console.anthropic.com"
    max_tracks_in_prompt = 1500

    def __init__(self, config: RemoteConfig, client: Any = None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Lazy-init the Anthropic client."""
        if self._client is None:
            self._client = make_anthropic_client(self.config)
        return self._client

    def complete(self, prompt: str) -> str:
        try:
            response = self._get_client().messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise_for_anthropic(e)

        content = getattr(response, "content", None)
        if not content:
            raise CurationError(FailureKind.MALFORMED_RESPONSE_ENVELOPE, "Invalid response format from Claude API")

        texts = [block.text for block in content if getattr(block, "type", "") == "text"]
        if not texts:
            raise CurationError(FailureKind.MALFORMED_RESPONSE_ENVELOPE, "Claude API response has no text content")
        return "".join(texts)


class OpenAICompletion:
    """One user message to Chat Completions, first choice's content as the answer."""

    provider = "ChatGPT"
    key_env = "OPENAI_API_KEY"
    key_url = "https://platform.openai.com/api-keys"
    max_tracks_in_prompt = 2000

    def __init__(self, config: RemoteConfig, client: Any = None):
        self.config = config
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = make_openai_client(self.config)
        return self._client

    def complete(self, prompt: str) -> str:
        try:
            response = self._get_client().chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except openai.APIError as e:
            raise_for_openai(e)

        choices = getattr(response, "choices", None)
        if not choices:
            raise CurationError(FailureKind.MALFORMED_RESPONSE_ENVELOPE, "No choices in OpenAI API response")

        content = getattr(choices[0].message, "content", None)
        if not isinstance(content, str):
            raise CurationError(FailureKind.MALFORMED_RESPONSE_ENVELOPE, "OpenAI API response has no message content")
        return content


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

class PromptBackend(GenerationBackend):
    """Single-shot prompt backend over either provider's completion API."""

    def __init__(
        self,
        completion,
        kind: BackendKind,
        prompt_config: Optional[PromptConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.completion = completion
        self.kind = kind
        self.prompt_config = prompt_config or PromptConfig(
            max_tracks_in_prompt=completion.max_tracks_in_prompt
        )
        self.rng = rng
        config: RemoteConfig = completion.config
        self._complete = retry_with_delay(
            max_retries=config.retries,
            delay=config.retry_delay,
            exceptions=(CurationError,),
            should_retry=is_retryable,
            sleep=sleep,
        )(completion.complete)

    @property
    def name(self) -> str:
        return f"{self.completion.provider} API ({self.completion.config.model})"

    def validate(self) -> Tuple[bool, str]:
        if not self.completion.config.api_key:
            return False, f"{self.completion.key_env} not set. Get a key from {self.completion.key_url}"
        return True, ""

    def _select(
        self,
        user_request: str,
        library: Sequence[Track],
        sink: Optional[StreamSink],
        verbose: bool,
    ) -> List[int]:
        ok, message = self.validate()
        if not ok:
            raise CurationError(FailureKind.MISSING_CREDENTIAL, message)

        prompt, sampled = build_prompt(user_request, library, self.prompt_config, self.rng)
        logger.debug(f"Prompt built with {len(sampled)} tracks")
        if verbose:
            logger.info(f"AI Prompt:\n{prompt}")

        text = self._complete(prompt)
        logger.debug(f"{self.completion.provider} response: {text}")
        if verbose:
            logger.info(f"Raw response:\n{text}")

        if sink is not None:
            sink.push(text, True)

        playlist = parse_json_response(text, sampled)
        if not playlist:
            raise CurationError(FailureKind.NO_PARSEABLE_ARRAY, "Could not parse playlist from response")
        return playlist
