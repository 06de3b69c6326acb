"""Request and response plumbing for the external document oracle.

Both the extraction adapter and the layout resolver talk to the same
Anthropic Messages API. Response content blocks are validated into a
discriminated union so callers pick text blocks explicitly instead of
probing attributes on whatever the service returned.
"""

import asyncio
import base64
from typing import Annotated, Any, Literal

import anthropic
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from docfill.utils.logger import get_logger

logger = get_logger(__name__)

class TextBlock(BaseModel):
    """Plain text returned by the oracle."""

    type: Literal["text"]
    text: str


class ToolUseBlock(BaseModel):
    """Tool invocation requested by the oracle."""

    type: Literal["tool_use"]
    id: str = ""
    name: str = ""
    input: Any = None


class ThinkingBlock(BaseModel):
    """Reasoning trace emitted before the answer."""

    type: Literal["thinking"]
    thinking: str = ""


class RedactedThinkingBlock(BaseModel):
    """Encrypted reasoning trace."""

    type: Literal["redacted_thinking"]
    data: str = ""


ContentBlock = Annotated[
    TextBlock | ToolUseBlock | ThinkingBlock | RedactedThinkingBlock,
    Field(discriminator="type"),
]

_BLOCK_ADAPTER: TypeAdapter[ContentBlock] = TypeAdapter(ContentBlock)


def _as_dict(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if hasattr(raw, "model_dump"):
        return raw.model_dump()
    return dict(vars(raw))


def parse_content_blocks(raw_blocks: list[Any]) -> list[ContentBlock]:
    """Validate raw response blocks into typed content blocks.

    Blocks of an unknown kind are discarded.

    Args:
        raw_blocks: ``content`` list of an oracle response, as SDK objects
            or plain dictionaries.

    Returns:
        Recognized content blocks in response order.
    """
    blocks: list[ContentBlock] = []
    for raw in raw_blocks or []:
        try:
            blocks.append(_BLOCK_ADAPTER.validate_python(_as_dict(raw)))
        except (ValidationError, TypeError) as exc:
            logger.debug("Discarding unrecognized response block: %s", exc)
    return blocks


def first_text(blocks: list[ContentBlock]) -> str | None:
    """Return the first non-empty text block, rejecting other kinds.

    Args:
        blocks: Typed content blocks.

    Returns:
        Text of the first usable text block, or ``None``.
    """
    for block in blocks:
        if isinstance(block, TextBlock):
            if block.text.strip():
                return block.text
            continue
        logger.debug("Rejecting non-text response block of kind '%s'", block.type)
    return None


def document_block(pdf_bytes: bytes) -> dict[str, Any]:
    """Build a base64 PDF document content block."""
    return {
        "type": "document",
        "source": {
            "type": "base64",
            "media_type": "application/pdf",
            "data": base64.standard_b64encode(pdf_bytes).decode("ascii"),
        },
    }


def text_block(text: str) -> dict[str, Any]:
    """Build a plain text content block."""
    return {"type": "text", "text": text}


class MessagesOracle:
    """Single-turn, timeout-bounded client for the Anthropic Messages API.

    The underlying SDK client is injected so that each pipeline owns its
    own connection settings.

    Args:
        client: An ``anthropic.AsyncAnthropic`` instance (or compatible).
        model: Model identifier.
        max_tokens: Response token limit.
        timeout_s: Wall-clock limit for one request, in seconds.
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        model: str,
        max_tokens: int = 4096,
        timeout_s: float = 60.0,
    ) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s

    async def ask(self, content: list[dict[str, Any]]) -> list[ContentBlock]:
        """Send one user message and return the typed response blocks.

        Args:
            content: Content blocks of the user message.

        Returns:
            Recognized response content blocks.

        Raises:
            anthropic.AnthropicError: If the request fails.
            TimeoutError: If the request exceeds ``timeout_s``.
            TypeError: If the client has no usable credentials.
        """
        response = await asyncio.wait_for(
            self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": content}],
            ),
            timeout=self.timeout_s,
        )
        return parse_content_blocks(getattr(response, "content", None) or [])
