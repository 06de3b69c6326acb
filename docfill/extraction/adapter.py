"""Extraction adapter sending source documents to the extraction oracle.

PDF sources within the byte budget are sent as native documents; larger
PDFs and all other sources are sent as text truncated to the character
budget at a whitespace boundary.
"""

import re

import fitz

from docfill.errors import ExtractionUnavailable
from docfill.utils.config import ExtractionConfig
from docfill.utils.logger import get_logger

from .oracle import MessagesOracle, document_block, first_text, text_block

logger = get_logger(__name__)

_TRAILING_TOKEN = re.compile(r"\s\S*\Z")


def is_pdf(source: bytes) -> bool:
    """Return ``True`` if the bytes carry a PDF header."""
    return source[:5] == b"%PDF-"


def truncate_text(text: str, limit: int) -> str:
    """Truncate text to at most ``limit`` characters without splitting a token.

    The cut backs off to the last whitespace before the limit. A single
    token longer than the limit is cut at the limit.

    Args:
        text: Source text.
        limit: Maximum number of characters to keep.

    Returns:
        The truncated text.
    """
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    cut = text[:limit]
    if text[limit].isspace():
        return cut
    match = _TRAILING_TOKEN.search(cut)
    if match and match.start() > 0:
        return cut[: match.start()]
    return cut


def pdf_text(source: bytes) -> str:
    """Return the plain text of every page of a PDF, in page order."""
    with fitz.open(stream=source, filetype="pdf") as doc:
        return "\n\n".join(page.get_text() for page in doc)


class ExtractionAdapter:
    """Turns source bytes into the extraction oracle's raw text answer.

    Args:
        oracle: Oracle client used for the request.
        config: Extraction configuration with budgets and prompt.
    """

    def __init__(self, oracle: MessagesOracle, config: ExtractionConfig) -> None:
        self.oracle = oracle
        self.config = config

    async def extract(self, source: bytes, budget: int | None = None) -> str:
        """Send the source document to the oracle and return its raw text.

        Args:
            source: Source document bytes (PDF or text).
            budget: Optional size limit overriding both configured budgets.

        Returns:
            The oracle's raw text answer, stripped of surrounding whitespace.

        Raises:
            ExtractionUnavailable: If the source is empty, the call fails or
                times out, or no usable text block comes back.
        """
        content = self._build_content(source, budget)
        logger.info("Sending source document to extraction oracle (%s)", self.oracle.model)

        # The SDK also raises outside its APIError tree, e.g. TypeError for
        # missing credentials.
        try:
            blocks = await self.oracle.ask(content)
        except Exception as exc:
            raise ExtractionUnavailable(
                f"Extraction oracle call failed: {exc or type(exc).__name__}"
            ) from exc

        text = first_text(blocks)
        if text is None:
            raise ExtractionUnavailable("Extraction oracle returned no text content")

        logger.info("Extraction finished (%d characters)", len(text))
        logger.debug("Extraction sample: %s", text[:200])
        return text.strip()

    def _build_content(self, source: bytes, budget: int | None) -> list[dict]:
        byte_budget = budget if budget is not None else self.config.max_source_bytes
        char_budget = budget if budget is not None else self.config.max_source_chars
        prompt = text_block(self.config.prompt)

        if is_pdf(source):
            if len(source) <= byte_budget:
                return [document_block(source), prompt]
            logger.warning(
                "Source PDF is %d bytes (budget %d), sending its text instead",
                len(source),
                byte_budget,
            )
            try:
                text = pdf_text(source)
            except Exception as exc:
                raise ExtractionUnavailable(f"Source PDF is unreadable: {exc}") from exc
        else:
            text = source.decode("utf-8", errors="replace")

        truncated = truncate_text(text, char_budget)
        if len(truncated) < len(text):
            logger.warning(
                "Source text truncated from %d to %d characters",
                len(text),
                len(truncated),
            )
        if not truncated.strip():
            raise ExtractionUnavailable("Source document has no extractable content")

        return [text_block(f"<document>\n{truncated}\n</document>"), prompt]
