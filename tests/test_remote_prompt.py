"""Unit tests for the single-shot remote prompt backends (no network)."""

from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest
from playlist_curator.backend import BackendKind, CollectingSink
from playlist_curator.config import RemoteConfig
from playlist_curator.models import FailureKind, Track
from playlist_curator.remote_prompt import AnthropicCompletion, OpenAICompletion, PromptBackend


def make_track(i):
    return Track(filepath=f"/music/{i}.mp3", filename=f"{i}.mp3", title=f"Song {i}", artist="Artist")


class FakeEndpoint:
    """Stands in for ``client.messages`` / ``client.chat.completions``."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def claude_text(text):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)], stop_reason="end_turn")


def openai_text(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text), finish_reason="stop")])


def anthropic_request():
    return httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def openai_request():
    return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


@pytest.fixture
def library():
    return [make_track(i) for i in range(6)]


@pytest.fixture
def config():
    return RemoteConfig(api_key="test-key", model="test-model", retry_delay=0.5)


def claude_backend(config, responses, sleeps=None):
    endpoint = FakeEndpoint(responses)
    client = SimpleNamespace(messages=endpoint)
    sleep = sleeps.append if sleeps is not None else (lambda s: None)
    backend = PromptBackend(AnthropicCompletion(config, client), BackendKind.CLAUDE_PROMPT, sleep=sleep)
    return backend, endpoint


def chatgpt_backend(config, responses, sleeps=None):
    endpoint = FakeEndpoint(responses)
    client = SimpleNamespace(chat=SimpleNamespace(completions=endpoint))
    sleep = sleeps.append if sleeps is not None else (lambda s: None)
    backend = PromptBackend(OpenAICompletion(config, client), BackendKind.CHATGPT_PROMPT, sleep=sleep)
    return backend, endpoint


class TestClaudePrompt:
    def test_success(self, config, library):
        backend, endpoint = claude_backend(config, [claude_text("Sure: [2, 4, 99]")])
        result = backend.generate("something mellow", library)
        assert result.ok
        assert result.indices == [1, 3]
        assert len(endpoint.calls) == 1
        call = endpoint.calls[0]
        assert call["model"] == "test-model"
        assert call["messages"][0]["role"] == "user"
        assert "something mellow" in call["messages"][0]["content"]

    def test_streams_answer_once(self, config, library):
        backend, _ = claude_backend(config, [claude_text("[1]")])
        sink = CollectingSink()
        backend.generate("x", library, stream_sink=sink)
        assert sink.final_text == "[1]"

    def test_callable_sink(self, config, library):
        seen = []
        backend, _ = claude_backend(config, [claude_text("[1]")])
        backend.generate("x", library, stream_sink=lambda chunk, final: seen.append((chunk, final)))
        assert seen == [("[1]", True)]

    def test_retries_once_on_transport_failure(self, config, library):
        sleeps = []
        error = anthropic.APIConnectionError(request=anthropic_request())
        backend, endpoint = claude_backend(config, [error, claude_text("[1, 2]")], sleeps)
        result = backend.generate("x", library)
        assert result.ok
        assert len(endpoint.calls) == 2
        assert sleeps == [0.5]

    def test_gives_up_after_two_attempts(self, config, library):
        response = httpx.Response(529, request=anthropic_request())
        errors = [anthropic.APIStatusError("overloaded", response=response, body=None) for _ in range(3)]
        backend, endpoint = claude_backend(config, errors)
        result = backend.generate("x", library)
        assert not result.ok
        assert result.error.kind == FailureKind.HTTP_ERROR
        assert result.error.status == 529
        assert result.stage == "network"
        assert len(endpoint.calls) == 2

    def test_malformed_envelope_not_retried(self, config, library):
        backend, endpoint = claude_backend(config, [SimpleNamespace(content=[]), claude_text("[1]")])
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.MALFORMED_RESPONSE_ENVELOPE
        assert len(endpoint.calls) == 1

    def test_no_array(self, config, library):
        backend, _ = claude_backend(config, [claude_text("I could not decide, sorry.")])
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.NO_PARSEABLE_ARRAY
        assert result.stage == "parse"

    def test_missing_key(self, library):
        backend, endpoint = claude_backend(RemoteConfig(model="m"), [claude_text("[1]")])
        ok, message = backend.validate()
        assert not ok
        assert "ANTHROPIC_API_KEY" in message
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.MISSING_CREDENTIAL
        assert endpoint.calls == []

    def test_prompt_sampled_for_large_library(self, config):
        library = [make_track(i) for i in range(1600)]
        backend, endpoint = claude_backend(config, [claude_text("[1500]")])
        result = backend.generate("x", library)
        assert result.ok
        assert "Showing a random sample of 1500" in endpoint.calls[0]["messages"][0]["content"]


class TestChatGPTPrompt:
    def test_success_with_sampling_params(self, config, library):
        backend, endpoint = chatgpt_backend(config, [openai_text("[6, 1]")])
        result = backend.generate("x", library)
        assert result.indices == [5, 0]
        call = endpoint.calls[0]
        assert call["temperature"] == 0.7
        assert call["max_tokens"] == 1024

    def test_no_choices(self, config, library):
        backend, _ = chatgpt_backend(config, [SimpleNamespace(choices=[])])
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.MALFORMED_RESPONSE_ENVELOPE

    def test_transport_failure_twice(self, config, library):
        sleeps = []
        errors = [openai.APIConnectionError(request=openai_request()) for _ in range(2)]
        backend, endpoint = chatgpt_backend(config, errors, sleeps)
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.TRANSPORT_FAILURE
        assert len(endpoint.calls) == 2
        assert sleeps == [0.5]

    def test_name(self, config):
        backend, _ = chatgpt_backend(config, [])
        assert backend.name == "ChatGPT API (test-model)"
