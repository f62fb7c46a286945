"""LLM collaborator: protocol, response types and the Anthropic adapter.

The loop only sees ``LLMResponse``: an ordered list of text segments and
tool invocations plus token usage. Everything provider-specific stays in
``AnthropicLLM``.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from anthropic import APIError, AsyncAnthropic

logger = logging.getLogger(__name__)


class LLMParseError(Exception):
    """The model returned something the loop cannot interpret (empty, non-JSON arguments)."""


class LLMCallError(Exception):
    """The model API call itself failed."""


@dataclass
class TextSegment:
    text: str


@dataclass
class ToolInvocation:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class LLMUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMResponse:
    """One model reply.

    Attributes:
        segments: Text and tool invocations in the order the model produced them.
        usage: Token counts reported for the call.
        stop_reason: Provider stop reason, if reported.
    """

    segments: list[TextSegment | ToolInvocation] = field(default_factory=list)
    usage: LLMUsage = field(default_factory=LLMUsage)
    stop_reason: str | None = None

    @property
    def text(self) -> str:
        return "\n".join(s.text for s in self.segments if isinstance(s, TextSegment)).strip()

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [s for s in self.segments if isinstance(s, ToolInvocation)]

    def to_assistant_content(self) -> list[dict[str, Any]]:
        """Content blocks for echoing this reply back as the assistant turn."""
        blocks: list[dict[str, Any]] = []
        for seg in self.segments:
            if isinstance(seg, TextSegment):
                if seg.text.strip():
                    blocks.append({"type": "text", "text": seg.text})
            else:
                blocks.append(
                    {"type": "tool_use", "id": seg.id, "name": seg.name, "input": seg.arguments}
                )
        return blocks


class LLMClient(Protocol):
    async def complete(
        self,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> LLMResponse: ...


def _block_value(block: Any, key: str) -> Any:
    if isinstance(block, dict):
        return block.get(key)
    return getattr(block, key, None)


def parse_response(content: list[Any], usage: Any = None, stop_reason: str | None = None) -> LLMResponse:
    """Convert provider content blocks into an LLMResponse.

    Accepts SDK block objects or plain dicts. Tool arguments given as a
    JSON string are decoded.

    Raises:
        LLMParseError: If there are no usable blocks or tool arguments are
            not a JSON object.
    """
    if not content:
        raise LLMParseError("Model returned no content")

    segments: list[TextSegment | ToolInvocation] = []
    for block in content:
        kind = _block_value(block, "type")
        if kind == "text":
            segments.append(TextSegment(text=_block_value(block, "text") or ""))
        elif kind == "tool_use":
            raw_input = _block_value(block, "input")
            if isinstance(raw_input, str):
                try:
                    raw_input = json.loads(raw_input) if raw_input.strip() else {}
                except json.JSONDecodeError as e:
                    raise LLMParseError(f"Tool arguments are not JSON: {e}") from e
            if raw_input is None:
                raw_input = {}
            if not isinstance(raw_input, dict):
                raise LLMParseError(
                    f"Tool arguments must be an object, got {type(raw_input).__name__}"
                )
            segments.append(
                ToolInvocation(
                    id=_block_value(block, "id") or "",
                    name=_block_value(block, "name") or "",
                    arguments=raw_input,
                )
            )
        else:
            logger.debug("Ignoring content block of type %s", kind)

    if not segments:
        raise LLMParseError("Model returned no text or tool calls")

    return LLMResponse(
        segments=segments,
        usage=LLMUsage(
            input_tokens=int(_block_value(usage, "input_tokens") or 0) if usage else 0,
            output_tokens=int(_block_value(usage, "output_tokens") or 0) if usage else 0,
        ),
        stop_reason=stop_reason,
    )


class AnthropicLLM:
    """LLMClient backed by the Anthropic Messages API.

    Attributes:
        model: Model id.
        max_tokens: Output token cap per call.
    """

    def __init__(
        self,
        model: str,
        max_tokens: int = 4096,
        client: AsyncAnthropic | None = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or AsyncAnthropic()

    async def complete(
        self,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> LLMResponse:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                tools=tools,
                messages=messages,
            )
        except APIError as e:
            logger.error("Anthropic API call failed: %s", e)
            raise LLMCallError(str(e)) from e
        return parse_response(response.content, response.usage, response.stop_reason)
