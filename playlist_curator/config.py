"""
Curator Configuration

Explicit settings objects handed to whichever backend needs them.  API keys
and model paths are read from the environment only by ``from_env()``;
nothing here is global state.
"""

import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

from .backend import BackendKind

# ---------------------------------------------------------------------------
# Model presets
# ---------------------------------------------------------------------------

CLAUDE_MODELS: Dict[str, str] = {
    "fast": "claude-3-5-haiku-20241022",
    "balanced": "claude-3-5-sonnet-20240620",
    "best": "claude-sonnet-4-5-20250929",
}
CLAUDE_ALIASES: Dict[str, str] = {"haiku": "fast", "sonnet": "balanced", "opus": "best"}

CHATGPT_MODELS: Dict[str, str] = {
    "fast": "gpt-4o-mini",
    "balanced": "gpt-4o",
    "best": "gpt-4",
}
CHATGPT_ALIASES: Dict[str, str] = {"mini": "fast", "gpt-4o-mini": "fast", "gpt-4o": "balanced", "gpt-4": "best"}


def resolve_claude_model(selection: Optional[str]) -> str:
    """Preset name/alias to model ID; anything else is used as a full model ID."""
    if not selection:
        return CLAUDE_MODELS["fast"]
    lower = selection.lower()
    preset = CLAUDE_ALIASES.get(lower, lower)
    return CLAUDE_MODELS.get(preset, selection)


def resolve_chatgpt_model(selection: Optional[str]) -> str:
    if not selection:
        return CHATGPT_MODELS["fast"]
    lower = selection.lower()
    preset = CHATGPT_ALIASES.get(lower, lower)
    return CHATGPT_MODELS.get(preset, selection)


# ---------------------------------------------------------------------------
# Backend configs
# ---------------------------------------------------------------------------

class RemoteConfig(BaseModel):
    """Settings shared by the Claude and ChatGPT backends."""

    api_key: str = ""
    model: str = ""
    timeout_connect: float = Field(30.0, gt=0, description="Connect timeout in seconds")
    timeout_read: float = Field(90.0, gt=0, description="Read timeout in seconds")
    max_tokens: int = Field(1024, ge=1)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    retries: int = Field(1, ge=0, le=1, description="Extra attempts for single-shot calls")
    retry_delay: float = Field(2.0, ge=0.0, description="Fixed delay between attempts, seconds")
    max_turns: int = Field(10, ge=1, description="Tool-call conversation turn budget")


class LocalModelConfig(BaseModel):
    """llama.cpp inference settings."""

    model_path: str = ""
    context_size: int = Field(2048, ge=64)
    threads: int = Field(4, ge=1)
    temperature: float = Field(0.7, ge=0.0)
    max_tokens: int = Field(1024, ge=1)
    top_k: int = Field(40, ge=1)
    top_p: float = Field(0.95, gt=0.0, le=1.0)
    max_tracks_in_prompt: int = Field(50, ge=1)


class KeywordConfig(BaseModel):
    max_results: int = Field(50, ge=1)
    min_score: float = 0.0


class CuratorSettings(BaseModel):
    """Which backend to build and how to configure it."""

    backend: BackendKind = BackendKind.CLAUDE
    model: Optional[str] = Field(None, description="Preset (fast/balanced/best) or full model ID")
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    local: LocalModelConfig = Field(default_factory=LocalModelConfig)
    keyword: KeywordConfig = Field(default_factory=KeywordConfig)

    @classmethod
    def from_env(cls, backend: BackendKind = BackendKind.CLAUDE, model: Optional[str] = None) -> "CuratorSettings":
        """Read credentials and local-model settings from environment variables."""
        local = LocalModelConfig(
            model_path=os.environ.get("VIBE_AI_MODEL", ""),
            context_size=int(os.environ.get("VIBE_AI_CONTEXT_SIZE", "2048")),
            threads=int(os.environ.get("VIBE_AI_THREADS", "4")),
        )
        return cls(
            backend=backend,
            model=model,
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            local=local,
        )


def default_cache_dir() -> Path:
    return Path(os.environ.get("HOME", ".")) / ".cache" / "vibe-playlist"
