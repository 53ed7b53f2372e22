"""Word-bounded chunking for the rewriting module.

Words are the runs of non-whitespace characters of the document. A chunk keeps
the exact source substring between its first and last word, and the whitespace
after it is kept in ``separator`` so that reassembly can rebuild the original
layout (paragraph breaks included) around rewritten chunks.
"""

from __future__ import annotations

import math
import re
from typing import Iterable, List, Tuple

from .errors import InvalidInput
from .models import TextChunk

WORD_RE = re.compile(r"\S+")


def split_words(text: str) -> List[Tuple[str, int, int]]:
    return [(match.group(), match.start(), match.end()) for match in WORD_RE.finditer(text or "")]


def count_words(text: str) -> int:
    return len(split_words(text))


def leading_whitespace(text: str) -> str:
    words = split_words(text)
    if not words:
        return text or ""
    return text[: words[0][1]]


def _make_chunk(text: str, words: List[Tuple[str, int, int]], start: int, end: int, chunk_id: str) -> TextChunk:
    first, last = words[start], words[end - 1]
    next_start = words[end][1] if end < len(words) else len(text)
    return TextChunk(
        id=chunk_id,
        content=text[first[1] : last[2]],
        start_word=start,
        end_word=end,
        separator=text[last[2] : next_start],
    )


def chunk_text(text: str, max_words_per_chunk: int, id_prefix: str = "chunk") -> List[TextChunk]:
    """Split ``text`` into chunks of at most ``max_words_per_chunk`` words.

    Empty or whitespace-only text yields an empty list rather than an error.
    """
    if not isinstance(max_words_per_chunk, int) or max_words_per_chunk <= 0:
        raise InvalidInput("maxWordsPerChunk must be a positive integer")

    words = split_words(text)
    if not words:
        return []

    chunks: List[TextChunk] = []
    for index, start in enumerate(range(0, len(words), max_words_per_chunk)):
        end = min(start + max_words_per_chunk, len(words))
        chunks.append(_make_chunk(text, words, start, end, f"{id_prefix}_{index:04d}"))
    return chunks


def reassemble(chunks: Iterable[TextChunk], leading: str = "") -> str:
    ordered = sorted(chunks, key=lambda chunk: chunk.start_word)
    return leading + "".join(chunk.content + chunk.separator for chunk in ordered)


def chunks_match(chunks: List[TextChunk], text: str) -> bool:
    """True when ``chunks`` still cover exactly the words of ``text``."""
    if not chunks:
        return False
    words = [word for word, _, _ in split_words(text)]
    ordered = sorted(chunks, key=lambda chunk: chunk.start_word)
    expected_start = 0
    for chunk in ordered:
        if chunk.start_word != expected_start:
            return False
        if [word for word, _, _ in split_words(chunk.content)] != words[chunk.start_word : chunk.end_word]:
            return False
        expected_start = chunk.end_word
    return expected_start == len(words)


def estimate_token_count(text: str) -> int:
    # roughly 4 characters per token
    return math.ceil(len(text or "") / 4)


def estimate_chunk_count(text: str, chunk_size: int = 1000) -> int:
    return max(1, math.ceil(count_words(text) / chunk_size))
