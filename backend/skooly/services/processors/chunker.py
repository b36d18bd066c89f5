"""
Text Chunking Service

Splits extracted material text into bounded chunks for embedding.

Chunking Strategies:
--------------------
1. Prose: sliding character window that prefers to end on a paragraph
   break, then on a sentence end, within the back half of the window.
   Consecutive chunks overlap by ``overlap`` characters.
2. Code (text starting with the "[Language: X]" marker written by the
   parser): line-based, starting new chunks at top-level declarations.

Size guarantee: no chunk is longer than ``max_chunk_size``, so a chunk plus
the overlap carried into its successor never exceeds
``max_chunk_size + overlap``.

Configuration from settings:
- CHUNK_MAX_SIZE: 2000 characters (default)
- CHUNK_OVERLAP: 200 characters (default)
"""

import re
from typing import List, Optional

from skooly.core.config import settings
from skooly.services.processors.parser import is_code_text


# Lines that open a new top-level block in common languages
BLOCK_START_PATTERNS = [
    # def / class / function / struct / interface / enum / type / func / fn / impl
    re.compile(
        r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?"
        r"(?:def|class|function|struct|interface|enum|type|func|fn|impl)\b"
    ),
    # const handler = (...) => / const handler = async (...) =>
    re.compile(r"^\s*(?:export\s+)?const\s+\w+\s*=\s*(?:async\s*)?\([^)]*\)\s*=>"),
    # Java / C++ / C# members
    re.compile(r"^\s*(?:public|private|protected)\b"),
]

# A running code chunk this long (in lines) may be split at a block start
MAX_LINES_BEFORE_SPLIT = 40


def is_block_start(line: str) -> bool:
    return any(pattern.match(line) for pattern in BLOCK_START_PATTERNS)


class TextChunker:
    """
    Character-based chunker for material text.

    Usage:
    ------
    chunker = TextChunker()
    chunks = chunker.chunk_text(material.content)
    """

    def __init__(
        self,
        max_chunk_size: Optional[int] = None,
        overlap: Optional[int] = None,
    ):
        """
        Args:
            max_chunk_size: Max characters per chunk (default from settings)
            overlap: Characters shared by consecutive prose chunks (default from settings)
        """
        self.max_chunk_size = max_chunk_size or settings.CHUNK_MAX_SIZE
        self.overlap = settings.CHUNK_OVERLAP if overlap is None else overlap

        if self.max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if self.overlap < 0 or self.overlap >= self.max_chunk_size:
            raise ValueError("overlap must be in [0, max_chunk_size)")

    def chunk_text(self, text: Optional[str]) -> List[str]:
        """
        Split text into chunks.

        Args:
            text: Extracted material text

        Returns:
            List of stripped, non-empty chunks ([] for empty input)
        """
        if not text or not text.strip():
            return []

        if is_code_text(text):
            return self.chunk_code(text)

        if len(text) <= self.max_chunk_size:
            return [text.strip()]

        chunks: List[str] = []
        length = len(text)
        half = self.max_chunk_size / 2
        start = 0

        while start < length:
            end = min(start + self.max_chunk_size, length)

            if end < length:
                window = text[start:end]

                paragraph_break = window.rfind("\n\n")
                if paragraph_break > half:
                    end = start + paragraph_break
                else:
                    sentence_break = window.rfind(". ")
                    if sentence_break > half:
                        # Keep the period with its sentence
                        end = start + sentence_break + 1

            chunk = text[start:end].strip()
            if chunk:
                chunks.append(chunk)

            if end >= length:
                break

            next_start = max(end - self.overlap, 0)
            if next_start <= start:
                next_start = end
            start = next_start

        return chunks

    def chunk_code(self, text: Optional[str]) -> List[str]:
        """
        Split source code, preferring declaration boundaries.

        The running chunk is flushed before a block-start line once it holds
        more than half of ``max_chunk_size`` characters or more than 40 lines,
        and always before a line that would push it past ``max_chunk_size``.
        """
        if not text or not text.strip():
            return []

        chunks: List[str] = []
        current: List[str] = []
        current_size = 0
        half = self.max_chunk_size / 2

        def flush() -> None:
            nonlocal current, current_size
            chunk = "\n".join(current).strip()
            if chunk:
                chunks.append(chunk)
            current = []
            current_size = 0

        for line in self._split_long_lines(text.split("\n")):
            line_size = len(line) + 1  # newline

            if current and is_block_start(line) and (
                current_size > half or len(current) > MAX_LINES_BEFORE_SPLIT
            ):
                flush()

            if current and current_size + line_size > self.max_chunk_size:
                flush()

            current.append(line)
            current_size += line_size

        flush()
        return chunks

    def _split_long_lines(self, lines: List[str]) -> List[str]:
        # Minified code can have single lines longer than a chunk
        limit = self.max_chunk_size - 1
        result = []
        for line in lines:
            while len(line) > limit:
                result.append(line[:limit])
                line = line[limit:]
            result.append(line)
        return result


def chunk_text(text: Optional[str], max_chunk_size: int = 2000, overlap: int = 200) -> List[str]:
    """Functional shortcut for :meth:`TextChunker.chunk_text`."""
    return TextChunker(max_chunk_size=max_chunk_size, overlap=overlap).chunk_text(text)


def chunk_code(text: Optional[str], max_chunk_size: int = 2000) -> List[str]:
    """Functional shortcut for :meth:`TextChunker.chunk_code`."""
    return TextChunker(max_chunk_size=max_chunk_size, overlap=0).chunk_code(text)
