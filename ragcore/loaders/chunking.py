from __future__ import annotations

"""Chunking policies: declaration spans for code, sentence packing for prose."""

import re
from dataclasses import dataclass, field
from typing import Callable

import tiktoken

from ragcore.rag.types import Chunk, ContentType, Document, DocumentMetadata

_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])(?=\s)|\n")

_MODIFIERS = (
    r"(?:(?:public|private|protected|internal|fileprivate|open|static|final|abstract|"
    r"export|default|async|override|mutating|indirect|sealed|data|inline|unsafe|"
    r"pub(?:\([^)\n]*\))?|@\w+(?:\([^)\n]*\))?)[ \t]+)*"
)
_KEYWORD_DECL_RE = re.compile(
    r"[ \t]*" + _MODIFIERS
    + r"(?P<keyword>func|function|fn|def|class|struct|enum|interface|protocol|trait|impl|extension)\b"
)
_FUNCTION_DECL_RE = re.compile(
    r"[ \t]*(?:[\w<>\[\],.*&:?]+[ \t]+)*(?P<name>[A-Za-z_$][\w$]*)[ \t]*\([^;{}]*\)[^;{}=\n]*\{"
)
_CONTROL_WORDS = frozenset(
    {
        "if", "for", "foreach", "while", "switch", "catch", "return", "else", "do",
        "with", "guard", "when", "match", "synchronized", "using", "lock", "try",
    }
)
_PYTHON_LANGUAGES = frozenset({"py", "python", "pyi"})
_MAX_HEADER_LINES = 5

LengthFunction = Callable[[str], int]


def normalize_text(text: str) -> str:
    """Normalize whitespace and line endings in text."""
    return _WHITESPACE_RE.sub(" ", text.replace("\r\n", "\n")).strip()


def token_length_function(encoding_name: str = "cl100k_base") -> LengthFunction:
    """Measure text in tiktoken tokens instead of characters."""
    encoding = tiktoken.get_encoding(encoding_name)

    def _length(text: str) -> int:
        return len(encoding.encode(text))

    return _length


@dataclass
class DocumentChunker:
    """Split document text into bounded chunks according to its content type.

    Prose chunks hold at most ``chunk_size`` units plus a word-based carry-over
    of at most ``overlap`` units from the previous chunk. Code chunks are whole
    declarations and never cover the same source range twice. Sentences and
    declarations are never split, even when they exceed ``chunk_size``.
    """
    chunk_size: int = 512
    overlap: int = 50
    length_function: LengthFunction = field(default=len, repr=False)

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be greater than zero")
        if self.overlap < 0:
            raise ValueError("overlap must not be negative")
        if self.overlap >= self.chunk_size:
            self.overlap = max(0, self.chunk_size // 4)

    def chunk(self, text: str, metadata: DocumentMetadata) -> list[Chunk]:
        """Chunk text using the code or prose policy selected by the metadata."""
        if not text.strip():
            return []
        if metadata.content_type == ContentType.CODE:
            pieces = self._code_spans(text, metadata.language)
            if not pieces:
                pieces = self._prose_chunks(text)
        else:
            pieces = self._prose_chunks(text)
        return [
            Chunk(text=piece, metadata=metadata.with_chunk_index(idx))
            for idx, piece in enumerate(pieces)
        ]

    def chunk_document(self, document: Document) -> list[Chunk]:
        return self.chunk(document.content, document.metadata)

    def _prose_chunks(self, text: str) -> list[str]:
        chunks: list[str] = []
        current = ""
        for raw in _SENTENCE_SPLIT_RE.split(text.replace("\r\n", "\n")):
            sentence = normalize_text(raw)
            if not sentence:
                continue
            if current and self.length_function(f"{current} {sentence}") > self.chunk_size:
                chunks.append(current)
                current = self._carry_over(current)
            current = f"{current} {sentence}" if current else sentence
        if current:
            chunks.append(current)
        return chunks

    def _carry_over(self, chunk: str) -> str:
        """Return the trailing words of a chunk that fit in the overlap budget."""
        if self.overlap <= 0:
            return ""
        kept: list[str] = []
        for word in reversed(chunk.split(" ")):
            candidate = " ".join([word, *kept])
            # one unit is reserved for the separator before the next sentence
            if self.length_function(candidate) + 1 > self.overlap:
                break
            kept.insert(0, word)
        return " ".join(kept)

    def _code_spans(self, code: str, language: str | None) -> list[str]:
        code = code.replace("\r\n", "\n")
        indentation_mode = (language or "").lower() in _PYTHON_LANGUAGES
        spans: list[str] = []
        cursor = 0
        line_start = 0
        while line_start < len(code):
            line_end = code.find("\n", line_start)
            if line_end == -1:
                line_end = len(code)
            if line_start >= cursor:
                end = self._declaration_end(code, line_start, line_end, indentation_mode)
                if end is not None:
                    piece = code[line_start:end].strip()
                    if piece:
                        spans.append(piece)
                    cursor = end
            line_start = line_end + 1
        return spans

    def _declaration_end(
        self, code: str, line_start: int, line_end: int, indentation_mode: bool
    ) -> int | None:
        line = code[line_start:line_end]
        keyword_match = _KEYWORD_DECL_RE.match(line)
        if keyword_match:
            keyword = keyword_match.group("keyword")
            header = line.split("#", 1)[0].rstrip()
            if keyword in {"def", "class"} and (indentation_mode or header.endswith(":")):
                return _indented_block_end(code, line_start)
            return _brace_block_end(code, line_start + keyword_match.end())
        function_match = _FUNCTION_DECL_RE.match(line)
        if function_match and function_match.group("name") not in _CONTROL_WORDS:
            return _brace_block_end(code, line_start + function_match.end() - 1)
        return None


def _brace_block_end(code: str, start: int) -> int | None:
    """Return the offset just past the brace block opened after ``start``."""
    open_at = _find_block_open(code, start)
    if open_at is None:
        return None
    depth = 0
    idx = open_at
    length = len(code)
    while idx < length:
        char = code[idx]
        if code.startswith("//", idx):
            newline = code.find("\n", idx)
            idx = length if newline == -1 else newline
            continue
        if code.startswith("/*", idx):
            close = code.find("*/", idx + 2)
            idx = length if close == -1 else close + 2
            continue
        if char in "\"`" or (char == "'" and _is_char_literal(code, idx)):
            idx = _skip_string(code, idx)
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return idx + 1
        idx += 1
    return None


def _find_block_open(code: str, start: int) -> int | None:
    """Find the opening brace of a declaration body.

    The search gives up at a ``;`` or ``}``, a blank line, the next keyword
    declaration, or after a handful of header lines, so body-less declarations
    do not borrow the body of whatever follows them.
    """
    paren_depth = 0
    newlines = 0
    for idx in range(start, len(code)):
        char = code[idx]
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth = max(0, paren_depth - 1)
        elif char == "{":
            return idx
        elif char in ";}" and paren_depth == 0:
            return None
        elif char == "\n" and paren_depth == 0:
            newlines += 1
            next_end = code.find("\n", idx + 1)
            next_line = code[idx + 1:] if next_end == -1 else code[idx + 1:next_end]
            if newlines > _MAX_HEADER_LINES or not next_line.strip():
                return None
            if _KEYWORD_DECL_RE.match(next_line):
                return None
    return None


def _is_char_literal(code: str, idx: int) -> bool:
    """Treat a single quote as a literal delimiter only if it closes on the same line."""
    newline = code.find("\n", idx + 1)
    limit = len(code) if newline == -1 else newline
    return code.find("'", idx + 1, limit) != -1


def _skip_string(code: str, idx: int) -> int:
    quote = code[idx]
    idx += 1
    while idx < len(code):
        char = code[idx]
        if char == "\\":
            idx += 2
            continue
        if char == quote:
            return idx + 1
        if char == "\n" and quote != "`":
            return idx
        idx += 1
    return len(code)


def _indented_block_end(code: str, line_start: int) -> int:
    """Return the end of a Python-style block headed by the line at ``line_start``."""
    lines = code[line_start:].split("\n")
    header_indent = _indent_of(lines[0])
    offset = line_start
    end = line_start + len(lines[0])
    paren_depth = _paren_delta(lines[0])
    header_done = paren_depth <= 0 and lines[0].split("#", 1)[0].rstrip().endswith(":")
    offset += len(lines[0]) + 1
    for line in lines[1:]:
        stripped = line.strip()
        if not header_done:
            paren_depth += _paren_delta(line)
            end = offset + len(line)
            if paren_depth <= 0 and line.split("#", 1)[0].rstrip().endswith(":"):
                header_done = True
        elif stripped:
            if _indent_of(line) <= header_indent:
                break
            end = offset + len(line)
        offset += len(line) + 1
    return end


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _paren_delta(line: str) -> int:
    return sum(line.count(c) for c in "([{") - sum(line.count(c) for c in ")]}")
