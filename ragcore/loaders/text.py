from __future__ import annotations

"""Plain text and source file loader for ingestion."""

from pathlib import Path

from ragcore.rag.types import ContentType, Document, DocumentMetadata

CODE_EXTENSIONS = frozenset(
    {
        "swift", "ts", "tsx", "js", "jsx", "mjs", "py", "pyi", "go", "rs", "java", "kt",
        "c", "h", "cc", "cpp", "hpp", "m", "mm", "cs", "rb", "php", "scala", "sh",
    }
)
MARKDOWN_EXTENSIONS = frozenset({"md", "markdown"})
DOCUMENTATION_EXTENSIONS = frozenset({"rst", "adoc", "txt"})
CONFIG_EXTENSIONS = frozenset({"json", "yaml", "yml", "toml", "ini", "cfg", "conf", "plist", "xml"})
DEFAULT_INGEST_EXTENSIONS = CODE_EXTENSIONS | MARKDOWN_EXTENSIONS | DOCUMENTATION_EXTENSIONS | CONFIG_EXTENSIONS


def infer_content_type(extension: str) -> ContentType:
    """Map a file extension (without dot) to a content type."""
    ext = extension.lower().lstrip(".")
    if ext in CODE_EXTENSIONS:
        return ContentType.CODE
    if ext in MARKDOWN_EXTENSIONS:
        return ContentType.MARKDOWN
    if ext in CONFIG_EXTENSIONS:
        return ContentType.CONFIG
    if ext in DOCUMENTATION_EXTENSIONS:
        return ContentType.DOCUMENTATION
    return ContentType.TEXT


def load_text_file(
    path: Path,
    doc_id: str | None = None,
    title: str | None = None,
) -> Document:
    """Load a UTF-8 file from disk into a Document."""
    content = path.read_text(encoding="utf-8")
    extension = path.suffix.lstrip(".").lower()
    content_type = infer_content_type(extension)
    return Document(
        doc_id=doc_id or str(path),
        content=content,
        metadata=DocumentMetadata(
            source=str(path),
            content_type=content_type,
            language=extension or None,
            title=title or path.name,
        ),
    )


def load_text_bytes(
    data: bytes,
    doc_id: str,
    source: str,
    content_type: ContentType = ContentType.TEXT,
) -> Document:
    """Load plain text bytes into a Document."""
    content = data.decode("utf-8", errors="ignore")
    return Document(
        doc_id=doc_id,
        content=content,
        metadata=DocumentMetadata(source=source, content_type=content_type),
    )
