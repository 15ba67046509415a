"""Unit tests for the llama.cpp backend using a scripted in-memory model."""

import pytest
from playlist_curator.backend import CollectingSink
from playlist_curator.config import LocalModelConfig
from playlist_curator.local_model import LocalModelBackend
from playlist_curator.models import FailureKind, Track

EOS = -1


class FakeLlama:
    """Mimics the low-level llama_cpp.Llama calls the backend makes."""

    def __init__(self, pieces, prompt_tokens=10, n_ctx=2048):
        self.pieces = list(pieces)
        self.prompt_tokens = prompt_tokens
        self._n_ctx = n_ctx
        self.evaluated = []
        self.sample_kwargs = []
        self.resets = 0
        self.closed = 0

    def tokenize(self, data, add_bos=True, special=False):
        assert isinstance(data, bytes)
        return list(range(self.prompt_tokens))

    def reset(self):
        self.resets += 1

    def eval(self, tokens):
        self.evaluated.append(list(tokens))

    def n_ctx(self):
        return self._n_ctx

    def token_eos(self):
        return EOS

    def sample(self, **kwargs):
        self.sample_kwargs.append(kwargs)
        if not self.pieces:
            return EOS
        self.pieces.pop(0)
        return 1000 + len(self.sample_kwargs)

    def detokenize(self, tokens):
        return self._emitted[tokens[0]]

    def close(self):
        self.closed += 1


def scripted(pieces, **kwargs):
    """FakeLlama whose sampled tokens detokenize to the given byte pieces."""
    llm = FakeLlama(pieces, **kwargs)
    llm._emitted = {1001 + i: piece for i, piece in enumerate(pieces)}
    return llm


def make_track(i):
    return Track(filepath=f"/music/{i}.mp3", filename=f"{i}.mp3", title=f"Song {i}", artist="Artist")


@pytest.fixture
def library():
    return [make_track(i) for i in range(3)]


@pytest.fixture
def config():
    return LocalModelConfig(model_path="/models/test.gguf")


def backend_with(config, llm):
    loads = []

    def loader(cfg):
        loads.append(cfg)
        return llm

    return LocalModelBackend(config, loader=loader), loads


class TestLocalGenerate:
    def test_streams_and_parses(self, config, library):
        llm = scripted([b"[", b"2, ", b"1", b"]"])
        backend, _ = backend_with(config, llm)
        sink = CollectingSink()

        result = backend.generate("x", library, stream_sink=sink)

        assert result.ok
        assert result.indices == [1, 0]
        assert sink.chunks == ["[", "2, ", "1", "]"]
        assert sink.final_text == "[2, 1]"

    def test_sampler_settings(self, config, library):
        llm = scripted([b"[1]"])
        backend, _ = backend_with(config, llm)
        backend.generate("x", library)
        kwargs = llm.sample_kwargs[0]
        assert kwargs["top_k"] == 40
        assert kwargs["top_p"] == 0.95
        assert kwargs["temp"] == 0.7

    def test_prompt_evaluated_then_each_token(self, config, library):
        llm = scripted([b"[1", b"]"])
        backend, _ = backend_with(config, llm)
        backend.generate("x", library)
        assert llm.resets == 1
        assert llm.evaluated[0] == list(range(10))
        assert llm.evaluated[1:] == [[1001], [1002]]

    def test_multibyte_character_split_across_tokens(self, config, library):
        e_acute = "é".encode("utf-8")
        llm = scripted([b"Caf", e_acute[:1], e_acute[1:], b" [3]"])
        backend, _ = backend_with(config, llm)
        sink = CollectingSink()
        result = backend.generate("x", library, stream_sink=sink)
        assert result.indices == [2]
        assert sink.final_text == "Café [3]"
        assert "�" not in sink.final_text

    def test_max_tokens_bounds_generation(self, library):
        config = LocalModelConfig(model_path="/models/test.gguf", max_tokens=2)
        llm = scripted([b"[1", b", 2", b", 3]"])
        backend, _ = backend_with(config, llm)
        sink = CollectingSink()
        result = backend.generate("x", library, stream_sink=sink)
        assert sink.final_text == "[1, 2"
        assert result.error.kind == FailureKind.NO_PARSEABLE_ARRAY

    def test_prompt_too_large(self, library):
        config = LocalModelConfig(model_path="/models/test.gguf", context_size=512)
        llm = scripted([b"[1]"], prompt_tokens=512)
        backend, _ = backend_with(config, llm)
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.PROMPT_TOO_LARGE_FOR_CONTEXT
        assert result.stage == "local model"
        assert llm.sample_kwargs == []

    def test_immediate_eos(self, config, library):
        backend, _ = backend_with(config, scripted([]))
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.NO_PARSEABLE_ARRAY

    def test_prompt_sampled_to_configured_size(self, library):
        config = LocalModelConfig(model_path="/models/test.gguf", max_tracks_in_prompt=2)
        llm = scripted([b"[1, 2, 3]"])
        backend, _ = backend_with(config, llm)
        result = backend.generate("x", library)
        # row 3 is out of range for a two-row prompt
        assert len(result.indices) == 2

    def test_empty_library(self, config):
        backend, loads = backend_with(config, scripted([b"[1]"]))
        result = backend.generate("x", [])
        assert result.error.kind == FailureKind.EMPTY_LIBRARY
        assert loads == []


class TestLifecycle:
    def test_lazy_single_load(self, config, library):
        backend, loads = backend_with(config, scripted([b"[1]", b"[1]"]))
        assert not backend.initialized
        backend.generate("x", library)
        backend.generate("y", library)
        assert len(loads) == 1
        assert backend.initialized

    def test_double_initialize(self, config):
        backend, loads = backend_with(config, scripted([]))
        backend.initialize()
        backend.initialize()
        assert len(loads) == 1

    def test_load_failure(self, config, library):
        def loader(cfg):
            raise ValueError("Failed to load model from file")

        backend = LocalModelBackend(config, loader=loader)
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.MODEL_LOAD_FAILURE
        assert not backend.initialized

    def test_binding_not_installed(self, tmp_path, library):
        model = tmp_path / "model.gguf"
        model.write_bytes(b"GGUF")

        def loader(cfg):
            raise ModuleNotFoundError("No module named 'llama_cpp'", name="llama_cpp")

        backend = LocalModelBackend(LocalModelConfig(model_path=str(model)), loader=loader)
        assert backend.validate() == (True, "")
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.MODEL_LOAD_FAILURE
        assert "playlist-curator[local]" in result.error.message
        assert not backend.initialized

    def test_loader_returns_none(self, config, library):
        backend = LocalModelBackend(config, loader=lambda cfg: None)
        result = backend.generate("x", library)
        assert result.error.kind == FailureKind.MODEL_LOAD_FAILURE

    def test_close_is_idempotent(self, config):
        llm = scripted([])
        backend, _ = backend_with(config, llm)
        backend.initialize()
        backend.close()
        backend.close()
        assert llm.closed == 1
        assert not backend.initialized

    def test_context_manager(self, config):
        llm = scripted([])
        backend, _ = backend_with(config, llm)
        with backend as b:
            b.initialize()
        assert llm.closed == 1

    def test_name(self, config):
        assert LocalModelBackend(config).name == "llama.cpp (test.gguf)"


class TestValidate:
    def test_missing_file(self, tmp_path):
        backend = LocalModelBackend(LocalModelConfig(model_path=str(tmp_path / "missing.gguf")))
        ok, message = backend.validate()
        assert not ok
        assert "not found" in message

    def test_directory(self, tmp_path):
        backend = LocalModelBackend(LocalModelConfig(model_path=str(tmp_path)))
        ok, _ = backend.validate()
        assert not ok

    def test_existing_file(self, tmp_path):
        model = tmp_path / "model.gguf"
        model.write_bytes(b"GGUF")
        assert LocalModelBackend(LocalModelConfig(model_path=str(model))).validate() == (True, "")
