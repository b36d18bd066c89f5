"""
File Parser

Extracts plain text from uploaded course files.

Dispatch is purely on the file extension (the client-supplied MIME type is
unreliable), through ``EXTENSION_HANDLERS``:

- .pdf   → pdfplumber, falling back to pypdf when pdfplumber finds no text
- .docx  → python-docx paragraphs (and table cells)
- text   → UTF-8 read, undecodable bytes replaced
- code   → raw source prefixed with "[Language: <Name>]" so the chunker can
           switch to code-aware chunking
- other  → plain-text read

Any failure raises :class:`ParseError`. Callers treat it as "no content":
the material is still created, and retrieval falls back to the stored file.
"""

import io
import logging
from pathlib import Path
from typing import Callable, Dict, Optional

import pdfplumber
from docx import Document
from pypdf import PdfReader


logger = logging.getLogger(__name__)


CODE_MARKER_PREFIX = "[Language:"


class ParseError(Exception):
    """Raised when text extraction from a file fails."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


# ========================================
# Extension Tables
# ========================================

CODE_LANGUAGES: Dict[str, str] = {
    ".py": "Python",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".java": "Java",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".cc": "C++",
    ".hpp": "C++",
    ".cs": "C#",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".php": "PHP",
    ".kt": "Kotlin",
    ".swift": "Swift",
    ".sql": "SQL",
}

TEXT_EXTENSIONS = {".txt", ".md", ".markdown", ".csv", ".json", ".html", ".htm", ".xml", ".yaml", ".yml"}


def code_marker(language: str) -> str:
    """Header line prepended to source files."""
    return f"{CODE_MARKER_PREFIX} {language}]\n"


def is_code_text(text: str) -> bool:
    return text.lstrip().startswith(CODE_MARKER_PREFIX)


# ========================================
# Handlers
# ========================================

def _read_text(path: Path) -> str:
    return path.read_bytes().decode("utf-8", errors="replace")


def _parse_pdf(path: Path) -> str:
    data = path.read_bytes()

    pages_text = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                pages_text.append(page_text)
    text = "\n\n".join(pages_text)

    if not text.strip():
        logger.info(f"pdfplumber found no text in {path.name}, trying pypdf")
        reader = PdfReader(io.BytesIO(data))
        pages_text = [page.extract_text() or "" for page in reader.pages]
        text = "\n\n".join(t for t in pages_text if t)

    return text


def _parse_docx(path: Path) -> str:
    document = Document(str(path))
    parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts)


def _code_handler(language: str) -> Callable[[Path], str]:
    def _parse_code(path: Path) -> str:
        return code_marker(language) + _read_text(path)
    return _parse_code


EXTENSION_HANDLERS: Dict[str, Callable[[Path], str]] = {
    ".pdf": _parse_pdf,
    ".docx": _parse_docx,
    **{ext: _read_text for ext in TEXT_EXTENSIONS},
    **{ext: _code_handler(language) for ext, language in CODE_LANGUAGES.items()},
}


# ========================================
# Public API
# ========================================

def parse_file(path: str, mime_type: Optional[str] = None) -> str:
    """
    Extract text from a file on disk.

    Args:
        path: File path; its extension selects the handler
        mime_type: Accepted for logging only, never used for dispatch

    Returns:
        Extracted text (may be empty for e.g. scanned PDFs)

    Raises:
        ParseError: If the file is missing or the extractor fails
    """
    file_path = Path(path)
    extension = file_path.suffix.lower()
    handler = EXTENSION_HANDLERS.get(extension, _read_text)

    try:
        text = handler(file_path)
    except Exception as e:
        logger.warning(
            f"Failed to parse {file_path.name} (ext={extension or 'none'}, mime={mime_type}): {e}"
        )
        raise ParseError(f"Could not extract text from {file_path.name}: {e}", path=str(path)) from e

    logger.debug(f"Parsed {file_path.name}: {len(text)} characters")
    return text


def material_type_for_extension(filename: str) -> str:
    """Best-guess material type ("pdf", "slide", "code", "doc", "text") for a filename."""
    extension = Path(filename).suffix.lower()
    if extension == ".pdf":
        return "pdf"
    if extension in (".ppt", ".pptx", ".key", ".odp"):
        return "slide"
    if extension in CODE_LANGUAGES:
        return "code"
    if extension in (".doc", ".docx", ".odt", ".rtf"):
        return "doc"
    return "text"
