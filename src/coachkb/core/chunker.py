"""Token-aware document chunking: paragraphs first, sentences for oversized paragraphs, fixed token overlap."""

import re
import logging
from typing import List, Dict, Any, Optional, Protocol, Sequence

import tiktoken
from pydantic import BaseModel

logger = logging.getLogger(__name__)

TOKENIZER_MODEL = "gpt-4o"

DEFAULT_MAX_CHUNK_TOKENS = 750
DEFAULT_MIN_CHUNK_TOKENS = 200
DEFAULT_OVERLAP_TOKENS = 50

PARAGRAPH_BREAK = re.compile(r"\n\n+")
SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


class Encoding(Protocol):
    """Anything that turns text into token ids and back (tiktoken.Encoding or a test double)."""

    def encode(self, text: str) -> List[int]: ...

    def decode(self, tokens: Sequence[int]) -> str: ...


class Chunk(BaseModel):
    """A token-bounded segment of a source document."""
    text: str
    index: int
    token_count: int
    start_char: int
    end_char: int


_tokenizer: Optional[tiktoken.Encoding] = None


def get_tokenizer() -> tiktoken.Encoding:
    """Return the shared tokenizer, creating it on first use."""
    global _tokenizer
    if _tokenizer is None:
        _tokenizer = tiktoken.encoding_for_model(TOKENIZER_MODEL)
        logger.debug(f"Loaded tokenizer for {TOKENIZER_MODEL}")
    return _tokenizer


def count_tokens(text: str, encoding: Optional[Encoding] = None) -> int:
    """Count tokens in text."""
    enc = encoding or get_tokenizer()
    return len(enc.encode(text))


def last_n_tokens(text: str, n: int, encoding: Optional[Encoding] = None) -> str:
    """Return the text of the last n tokens of text."""
    if n <= 0:
        return ""
    enc = encoding or get_tokenizer()
    tokens = enc.encode(text)
    return enc.decode(tokens[-n:])


def _create_chunk(text: str, index: int, start_char: int, encoding: Encoding) -> Chunk:
    return Chunk(
        text=text.strip(),
        index=index,
        token_count=count_tokens(text, encoding),
        start_char=start_char,
        end_char=start_char + len(text)
    )


def chunk_document(
    text: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_TOKENS,
    min_chunk_size: int = DEFAULT_MIN_CHUNK_TOKENS,
    overlap_size: int = DEFAULT_OVERLAP_TOKENS,
    encoding: Optional[Encoding] = None
) -> List[Chunk]:
    """
    Split text into token-bounded chunks on natural boundaries.

    Paragraphs (blank-line separated) are packed greedily until the next one
    would push the chunk past ``max_chunk_size``. A paragraph that is larger
    than ``max_chunk_size`` on its own is split into sentences and packed the
    same way. Each chunk emitted because of overflow seeds the next chunk with
    its last ``overlap_size`` tokens.

    Args:
        text: Document text
        max_chunk_size: Token budget per chunk
        min_chunk_size: Minimum tokens for the trailing chunk to be kept
        overlap_size: Tokens carried over between consecutive chunks
        encoding: Tokenizer override (defaults to the gpt-4o encoding)

    Returns:
        Chunks in document order, indexed from 0
    """
    enc = encoding or get_tokenizer()
    chunks: List[Chunk] = []

    paragraphs = [p for p in PARAGRAPH_BREAK.split(text) if p.strip()]

    current: List[str] = []
    current_tokens = 0
    char_position = 0

    def emit(chunk_text: str) -> None:
        # char_position is past the separator after the last paragraph read
        start = max(0, char_position - 2 - len(chunk_text))
        chunks.append(_create_chunk(chunk_text, len(chunks), start, enc))

    def seed_overlap(chunk_text: str) -> None:
        nonlocal current, current_tokens
        overlap = last_n_tokens(chunk_text, overlap_size, enc)
        current = [overlap] if overlap else []
        current_tokens = count_tokens(overlap, enc) if overlap else 0

    for paragraph in paragraphs:
        paragraph_tokens = count_tokens(paragraph, enc)

        if paragraph_tokens > max_chunk_size:
            # Oversized paragraph: close what we have, then pack by sentence
            if current:
                emit("\n\n".join(current))
                current = []
                current_tokens = 0

            for sentence in SENTENCE_END.split(paragraph):
                sentence_tokens = count_tokens(sentence, enc)

                if current_tokens + sentence_tokens > max_chunk_size and current:
                    chunk_text = " ".join(current)
                    emit(chunk_text)
                    seed_overlap(chunk_text)

                current.append(sentence)
                current_tokens += sentence_tokens
        else:
            if current_tokens + paragraph_tokens > max_chunk_size and current:
                chunk_text = "\n\n".join(current)
                emit(chunk_text)
                seed_overlap(chunk_text)

            current.append(paragraph)
            current_tokens += paragraph_tokens

        char_position += len(paragraph) + 2

    # A short tail is dropped unless it is the whole document
    if current and (current_tokens >= min_chunk_size or not chunks):
        emit("\n\n".join(current))

    logger.info(f"Chunked document into {len(chunks)} chunks ({len(paragraphs)} paragraphs)")
    return chunks


def preview_chunks(
    text: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_TOKENS,
    encoding: Optional[Encoding] = None
) -> Dict[str, Any]:
    """Preview chunking results before processing."""
    chunks = chunk_document(text, max_chunk_size, encoding=encoding)

    total_tokens = sum(c.token_count for c in chunks)
    avg_tokens = round(total_tokens / len(chunks)) if chunks else 0

    return {
        "total_chunks": len(chunks),
        "avg_tokens_per_chunk": avg_tokens,
        "chunks": [
            {
                "preview": c.text[:200] + ("..." if len(c.text) > 200 else ""),
                "tokens": c.token_count
            }
            for c in chunks
        ]
    }
