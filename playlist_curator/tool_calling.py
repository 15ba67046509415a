"""
Tool-Calling Backends for Claude and ChatGPT

Instead of pasting the library into the prompt, the model is given search
tools over the full library and queries it turn by turn:

- We send the request, the library size and the tool catalogue
- The model answers with tool calls, which we run against LibrarySearch
- Tool results go back into the conversation and the model goes again
- A turn with no tool calls is the final answer: a JSON array of 0-based
  library indices

The conversation lives only for one ``generate()`` call and is bounded by a
turn budget.  Transport or HTTP failures end the loop immediately.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import anthropic
import openai
from loguru import logger

from .backend import BackendKind, GenerationBackend, StreamSink
from .config import RemoteConfig
from .library_search import DEFAULT_MAX_RESULTS, LibrarySearch
from .models import CurationError, FailureKind, Track
from .prompt_builder import parse_absolute_indices
from .remote_clients import (
    make_anthropic_client,
    make_openai_client,
    raise_for_anthropic,
    raise_for_openai,
)

MAX_TURNS = 10
TOOL_MAX_TOKENS = 4096


# ---------------------------------------------------------------------------
# Tool definitions (provider-neutral JSON Schema)
# ---------------------------------------------------------------------------

_MAX_RESULTS_PARAM = {
    "type": "number",
    "description": f"Maximum number of results to return (default: {DEFAULT_MAX_RESULTS})",
    "default": DEFAULT_MAX_RESULTS,
}

TOOL_SPECS: List[Dict[str, Any]] = [
    {
        "name": "search_by_artist",
        "description": (
            "Search the music library for tracks by a specific artist. "
            "Use this to find all songs by an artist or band."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "artist_name": {
                    "type": "string",
                    "description": "The name of the artist or band to search for (partial matches supported)",
                },
                "max_results": _MAX_RESULTS_PARAM,
            },
            "required": ["artist_name"],
        },
    },
    {
        "name": "search_by_genre",
        "description": (
            "Search the music library for tracks in a specific genre. "
            "Use this to find songs by musical style."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "genre": {
                    "type": "string",
                    "description": "The genre to search for (e.g., 'rock', 'jazz', 'classical')",
                },
                "max_results": _MAX_RESULTS_PARAM,
            },
            "required": ["genre"],
        },
    },
    {
        "name": "search_by_album",
        "description": "Search the music library for tracks from a specific album.",
        "parameters": {
            "type": "object",
            "properties": {
                "album_name": {
                    "type": "string",
                    "description": "The name of the album to search for (partial matches supported)",
                },
                "max_results": _MAX_RESULTS_PARAM,
            },
            "required": ["album_name"],
        },
    },
    {
        "name": "search_by_title",
        "description": "Search the music library for tracks by song title or keywords in the title.",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {
                    "type": "string",
                    "description": "The song title or keywords to search for (partial matches supported)",
                },
                "max_results": _MAX_RESULTS_PARAM,
            },
            "required": ["title"],
        },
    },
    {
        "name": "search_by_year_range",
        "description": "Search the music library for tracks released within a specific year range.",
        "parameters": {
            "type": "object",
            "properties": {
                "start_year": {"type": "number", "description": "The starting year (inclusive)"},
                "end_year": {"type": "number", "description": "The ending year (inclusive)"},
                "max_results": _MAX_RESULTS_PARAM,
            },
            "required": ["start_year", "end_year"],
        },
    },
    {
        "name": "get_library_overview",
        "description": (
            "Get an overview of the music library including total tracks, unique artists, "
            "genres, and albums. Use this first to understand what's available."
        ),
        "parameters": {"type": "object", "properties": {}, "required": []},
    },
]


def anthropic_tools() -> List[Dict[str, Any]]:
    return [
        {"name": t["name"], "description": t["description"], "input_schema": t["parameters"]}
        for t in TOOL_SPECS
    ]


def openai_tools() -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t["description"],
                "parameters": t["parameters"],
            },
        }
        for t in TOOL_SPECS
    ]


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------

_FIELD_SEARCHES = {
    "search_by_artist": ("artist_name", "search_by_artist"),
    "search_by_genre": ("genre", "search_by_genre"),
    "search_by_album": ("album_name", "search_by_album"),
    "search_by_title": ("title", "search_by_title"),
}


def execute_tool(tool_name: str, arguments: Dict[str, Any], search: LibrarySearch) -> Dict[str, Any]:
    """Run one tool call against the library and return its JSON-ready result."""
    logger.debug(f"Executing tool: {tool_name} with input: {arguments}")

    try:
        max_results = int(arguments.get("max_results", DEFAULT_MAX_RESULTS))

        if tool_name in _FIELD_SEARCHES:
            arg_name, method = _FIELD_SEARCHES[tool_name]
            query = arguments[arg_name]
            if not isinstance(query, str):
                return {"error": f"'{arg_name}' must be a string"}
            result = getattr(search, method)(query, max_results)
        elif tool_name == "search_by_year_range":
            result = search.search_by_year_range(
                int(arguments["start_year"]), int(arguments["end_year"]), max_results
            )
        elif tool_name == "get_library_overview":
            return search.overview()
        else:
            return {"error": f"Unknown tool: {tool_name}"}
    except KeyError as e:
        return {"error": f"Missing argument {e} for {tool_name}"}
    except (TypeError, ValueError, OverflowError) as e:
        # OverflowError: JSON Infinity or 1e400 decoded to a float inf
        return {"error": f"Invalid arguments for {tool_name}: {e}"}

    return {
        "found": result.found,
        "total_matches": result.total_matches,
        "indices": result.indices,
    }


# ---------------------------------------------------------------------------
# Provider-neutral turn representation
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class ModelTurn:
    assistant_message: Dict[str, Any]
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    stop_reason: str = ""
    needs_continuation: bool = False


def build_initial_prompt(user_request: str, library_size: int) -> str:
    return (
        "You are a music playlist curator with access to search tools for a music library of "
        f"{library_size} tracks.\n\n"
        f'User\'s request: "{user_request}"\n\n'
        "Use the provided search tools to find tracks that match the user's request. "
        "You can search by artist, genre, album, title, or year range. "
        "Start by using get_library_overview to understand what's available, "
        "then use specific searches to find matching tracks.\n\n"
        "Once you've found suitable tracks, respond with a JSON array of track indices (0-based) "
        "that best match the request. Select 10-50 tracks that fit the description.\n"
        "Example final response: [42, 156, 892, 1043, ...]"
    )


class AnthropicToolAdapter:
    """Messages API wire schema: tool_use / tool_result content blocks."""

    provider = "Claude"
    key_env = "ANTHROPIC_API_KEY"
    key_url = "https://console.anthropic.com"

    def __init__(self, config: RemoteConfig, client: Any = None):
        self.config = config
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = make_anthropic_client(self.config)
        return self._client

    def send(self, messages: List[Dict[str, Any]]) -> ModelTurn:
        try:
            response = self._get_client().messages.create(
                model=self.config.model,
                max_tokens=TOOL_MAX_TOKENS,
                messages=messages,
                tools=anthropic_tools(),
            )
        except anthropic.APIError as e:
            raise_for_anthropic(e)

        content = getattr(response, "content", None)
        if content is None:
            raise CurationError(FailureKind.MALFORMED_RESPONSE_ENVELOPE, "Claude API response has no content")

        blocks: List[Dict[str, Any]] = []
        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in content:
            block_type = getattr(block, "type", "")
            if block_type == "text":
                texts.append(block.text)
                blocks.append({"type": "text", "text": block.text})
            elif block_type == "tool_use":
                blocks.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
                if isinstance(block.input, dict):
                    calls.append(ToolCall(id=block.id, name=block.name, arguments=block.input))
                else:
                    calls.append(ToolCall(id=block.id, name=block.name, error="Tool input is not an object"))

        stop_reason = getattr(response, "stop_reason", "") or ""
        return ModelTurn(
            assistant_message={"role": "assistant", "content": blocks},
            text="".join(texts),
            tool_calls=calls,
            stop_reason=stop_reason,
            needs_continuation=stop_reason == "pause_turn",
        )

    def tool_result_messages(self, results: List[Tuple[ToolCall, Dict[str, Any]]]) -> List[Dict[str, Any]]:
        return [{
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": call.id, "content": json.dumps(payload)}
                for call, payload in results
            ],
        }]


class OpenAIToolAdapter:
    """Chat Completions wire schema: tool_calls with JSON-encoded string arguments."""

    provider = "ChatGPT"
    key_env = "OPENAI_API_KEY"
    key_url = "https://platform.openai.com/api-keys"

    def __init__(self, config: RemoteConfig, client: Any = None):
        self.config = config
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = make_openai_client(self.config)
        return self._client

    def send(self, messages: List[Dict[str, Any]]) -> ModelTurn:
        try:
            response = self._get_client().chat.completions.create(
                model=self.config.model,
                messages=messages,
                tools=openai_tools(),
                tool_choice="auto",
                max_tokens=TOOL_MAX_TOKENS,
            )
        except openai.APIError as e:
            raise_for_openai(e)

        choices = getattr(response, "choices", None)
        if not choices:
            raise CurationError(FailureKind.MALFORMED_RESPONSE_ENVELOPE, "No choices in OpenAI API response")

        choice = choices[0]
        message = choice.message
        text = message.content or ""
        raw_calls = getattr(message, "tool_calls", None) or []

        assistant: Dict[str, Any] = {"role": "assistant", "content": message.content}
        calls: List[ToolCall] = []
        if raw_calls:
            assistant["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.function.name, "arguments": tc.function.arguments},
                }
                for tc in raw_calls
            ]
            for tc in raw_calls:
                calls.append(self._decode_call(tc))

        return ModelTurn(
            assistant_message=assistant,
            text=text,
            tool_calls=calls,
            stop_reason=getattr(choice, "finish_reason", "") or "",
        )

    @staticmethod
    def _decode_call(tc) -> ToolCall:
        # Arguments arrive as a JSON document inside a string
        try:
            arguments = json.loads(tc.function.arguments or "{}")
        except (TypeError, ValueError) as e:
            return ToolCall(id=tc.id, name=tc.function.name, error=f"Malformed tool arguments: {e}")
        if not isinstance(arguments, dict):
            return ToolCall(id=tc.id, name=tc.function.name, error="Tool arguments are not a JSON object")
        return ToolCall(id=tc.id, name=tc.function.name, arguments=arguments)

    def tool_result_messages(self, results: List[Tuple[ToolCall, Dict[str, Any]]]) -> List[Dict[str, Any]]:
        return [
            {"role": "tool", "tool_call_id": call.id, "content": json.dumps(payload)}
            for call, payload in results
        ]


# ---------------------------------------------------------------------------
# Conversation loop
# ---------------------------------------------------------------------------

class ToolCallLoop:
    """
    Bounded multi-turn conversation: each turn sends the full history plus
    tool declarations, runs any requested tools, and stops on a final
    answer or when the turn budget runs out.
    """

    def __init__(self, adapter, max_turns: int = MAX_TURNS):
        self.adapter = adapter
        self.max_turns = max_turns
        self.turns_used = 0
        self.tool_errors: List[str] = []
        self.final_text: str = ""

    def run(self, user_request: str, library: Sequence[Track]) -> List[int]:
        search = LibrarySearch(library)
        messages: List[Dict[str, Any]] = [
            {"role": "user", "content": build_initial_prompt(user_request, len(library))}
        ]
        self.turns_used = 0
        self.tool_errors = []
        self.final_text = ""

        for turn in range(self.max_turns):
            self.turns_used = turn + 1
            logger.debug(f"Tool use turn {turn + 1}/{self.max_turns}")

            reply = self.adapter.send(messages)
            messages.append(reply.assistant_message)

            if reply.tool_calls:
                logger.info(f"{self.adapter.provider} is using tools to search the library...")
                results = [(call, self._dispatch(call, search)) for call in reply.tool_calls]
                messages.extend(self.adapter.tool_result_messages(results))
                continue

            if reply.needs_continuation:
                logger.debug(f"Model paused ({reply.stop_reason}), continuing")
                continue

            return self._final_answer(reply, len(library))

        logger.error("Exceeded maximum tool use turns")
        raise CurationError(
            FailureKind.TURN_BUDGET_EXCEEDED,
            f"Tool search took too many turns (limit {self.max_turns})",
        )

    def _dispatch(self, call: ToolCall, search: LibrarySearch) -> Dict[str, Any]:
        if call.error is not None:
            logger.warning(f"Skipping tool call {call.name} ({call.id}): {call.error}")
            self.tool_errors.append(f"{call.name}: {call.error}")
            return {"error": call.error}

        logger.info(f"Executing tool: {call.name}")
        result = execute_tool(call.name, call.arguments or {}, search)
        if "error" in result:
            logger.warning(f"Tool {call.name} failed: {result['error']}")
            self.tool_errors.append(f"{call.name}: {result['error']}")
        return result

    def _final_answer(self, reply: ModelTurn, library_size: int) -> List[int]:
        self.final_text = reply.text
        logger.debug(f"Final response text: {reply.text}")

        playlist = parse_absolute_indices(reply.text, library_size)
        if not playlist:
            raise CurationError(FailureKind.NO_PARSEABLE_ARRAY, "Could not parse playlist from response")
        return playlist


class ToolCallingBackend(GenerationBackend):
    """Claude or ChatGPT driving LibrarySearch through function calls."""

    def __init__(self, adapter, kind: BackendKind, max_turns: int = MAX_TURNS):
        self.adapter = adapter
        self.kind = kind
        self.max_turns = max_turns

    @property
    def name(self) -> str:
        return f"{self.adapter.provider} API ({self.adapter.config.model})"

    def validate(self) -> Tuple[bool, str]:
        if not self.adapter.config.api_key:
            return False, f"{self.adapter.key_env} not set. Get a key from {self.adapter.key_url}"
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

        logger.info(f"Using tool-enabled search across {len(library)} tracks")
        loop = ToolCallLoop(self.adapter, self.max_turns)
        try:
            playlist = loop.run(user_request, library)
        finally:
            if verbose:
                logger.info(f"Tool loop used {loop.turns_used} turn(s), {len(loop.tool_errors)} tool error(s)")
                if loop.final_text:
                    logger.info(f"Raw response:\n{loop.final_text}")

        if sink is not None:
            sink.push(loop.final_text, True)
        return playlist
