"""Configuration-driven backend selection."""

from typing import Any, Optional

from loguru import logger

from .backend import BackendKind, GenerationBackend
from .config import CuratorSettings, resolve_chatgpt_model, resolve_claude_model
from .keyword_backend import KeywordBackend
from .local_model import LocalModelBackend
from .remote_prompt import AnthropicCompletion, OpenAICompletion, PromptBackend
from .tool_calling import AnthropicToolAdapter, OpenAIToolAdapter, ToolCallingBackend


def parse_backend_kind(value: str) -> BackendKind:
    """'claude', 'chatgpt', 'claude_prompt', 'chatgpt_prompt', 'llamacpp' or 'keyword'."""
    normalized = value.strip().lower().replace("-", "_")
    try:
        return BackendKind(normalized)
    except ValueError:
        valid = ", ".join(f"'{k.value}'" for k in BackendKind)
        raise ValueError(f"Invalid AI backend '{value}'. Valid options: {valid}") from None


def create_backend(settings: CuratorSettings, client: Any = None) -> GenerationBackend:
    """
    Build the backend named by ``settings.backend``.

    ``client`` replaces the provider SDK client for the remote backends.
    """
    kind = settings.backend

    if kind in (BackendKind.CLAUDE, BackendKind.CLAUDE_PROMPT):
        remote = settings.remote.model_copy(update={
            "api_key": settings.anthropic_api_key,
            "model": resolve_claude_model(settings.model),
        })
        if kind == BackendKind.CLAUDE:
            backend = ToolCallingBackend(AnthropicToolAdapter(remote, client), kind, remote.max_turns)
        else:
            backend = PromptBackend(AnthropicCompletion(remote, client), kind)

    elif kind in (BackendKind.CHATGPT, BackendKind.CHATGPT_PROMPT):
        remote = settings.remote.model_copy(update={
            "api_key": settings.openai_api_key,
            "model": resolve_chatgpt_model(settings.model),
        })
        if kind == BackendKind.CHATGPT:
            backend = ToolCallingBackend(OpenAIToolAdapter(remote, client), kind, remote.max_turns)
        else:
            backend = PromptBackend(OpenAICompletion(remote, client), kind)

    elif kind == BackendKind.LLAMACPP:
        backend = LocalModelBackend(settings.local)

    elif kind == BackendKind.KEYWORD:
        backend = KeywordBackend(
            max_results=settings.keyword.max_results,
            min_score=settings.keyword.min_score,
        )

    else:
        raise ValueError(f"Unsupported backend: {kind}")

    logger.debug(f"Selected backend: {backend.name}")
    return backend


def backend_from_env(backend: str = "claude", model: Optional[str] = None) -> GenerationBackend:
    return create_backend(CuratorSettings.from_env(parse_backend_kind(backend), model))
