"""
SDK client construction and error translation for the remote backends.

Clients are built lazily with SDK-level retries disabled; retry policy
belongs to the backends.
"""

from typing import NoReturn

import anthropic
import httpx
import openai

from .config import RemoteConfig
from .models import CurationError, FailureKind


def _timeout(config: RemoteConfig) -> httpx.Timeout:
    return httpx.Timeout(config.timeout_read, connect=config.timeout_connect, write=config.timeout_connect)


def make_anthropic_client(config: RemoteConfig) -> anthropic.Anthropic:
    return anthropic.Anthropic(api_key=config.api_key, timeout=_timeout(config), max_retries=0)


def make_openai_client(config: RemoteConfig) -> openai.OpenAI:
    return openai.OpenAI(api_key=config.api_key, timeout=_timeout(config), max_retries=0)


def raise_for_anthropic(e: Exception) -> NoReturn:
    """Re-raise an Anthropic SDK failure as a CurationError."""
    if isinstance(e, anthropic.APIStatusError):
        raise CurationError(
            FailureKind.HTTP_ERROR,
            f"Claude API returned status {e.status_code}",
            status=e.status_code,
        ) from e
    if isinstance(e, anthropic.APIConnectionError):
        raise CurationError(FailureKind.TRANSPORT_FAILURE, f"Failed to connect to Claude API: {e}") from e
    raise CurationError(FailureKind.MALFORMED_RESPONSE_ENVELOPE, f"Invalid response from Claude API: {e}") from e


def raise_for_openai(e: Exception) -> NoReturn:
    if isinstance(e, openai.APIStatusError):
        raise CurationError(
            FailureKind.HTTP_ERROR,
            f"OpenAI API returned status {e.status_code}",
            status=e.status_code,
        ) from e
    if isinstance(e, openai.APIConnectionError):
        raise CurationError(FailureKind.TRANSPORT_FAILURE, f"Failed to connect to OpenAI API: {e}") from e
    raise CurationError(FailureKind.MALFORMED_RESPONSE_ENVELOPE, f"Invalid response from OpenAI API: {e}") from e


def is_retryable(e: CurationError) -> bool:
    return e.kind in (FailureKind.TRANSPORT_FAILURE, FailureKind.HTTP_ERROR)
