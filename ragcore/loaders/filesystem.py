from __future__ import annotations

"""Recursive directory loader for codebase and document ingest."""

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator

from ragcore.loaders.text import DEFAULT_INGEST_EXTENSIONS, load_text_file
from ragcore.rag.types import Document

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset(
    {
        ".git", ".hg", ".svn", "__pycache__", "node_modules", "build", "dist", ".build",
        "DerivedData", "Pods", "venv", ".venv", "target", ".idea", ".mypy_cache",
        ".pytest_cache", ".tox",
    }
)


def iter_source_files(root: Path, extensions: Iterable[str]) -> Iterator[Path]:
    """Yield files under root whose extension is allowed, skipping ignored directories."""
    allowed = {ext.lower().lstrip(".") for ext in extensions}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in IGNORED_DIRS)
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if path.suffix.lstrip(".").lower() in allowed:
                yield path


def iter_documents(
    root: Path | str,
    extensions: Iterable[str] | None = None,
    skipped: list[str] | None = None,
) -> Iterator[Document]:
    """Load every allowed file under root; unreadable files are skipped.

    Paths of skipped files are appended to ``skipped`` when a list is given.
    """
    root_path = Path(root)
    for path in iter_source_files(root_path, extensions or DEFAULT_INGEST_EXTENSIONS):
        try:
            document = load_text_file(path, title=str(path.relative_to(root_path)))
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug(
                "ingest_file_skipped",
                extra={"path": str(path), "error": type(exc).__name__},
            )
            if skipped is not None:
                skipped.append(str(path))
            continue
        yield document
