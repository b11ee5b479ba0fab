"""
Corpus file reading.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from textgen.config import settings
from .errors import CorpusNotFoundError, InvalidInputError


def resolve_corpus_path(filename: Union[str, Path], corpus_dir: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve a corpus file path.

    Absolute paths and paths with a directory part are used as given;
    bare file names are looked up in the corpus directory.
    """
    if not filename:
        raise InvalidInputError("Invalid filename")

    path = Path(filename)
    if ".." in path.parts:
        raise InvalidInputError(f"Invalid path: {filename}")

    if path.is_absolute() or len(path.parts) > 1:
        return path.resolve()
    return Path(corpus_dir or settings.CORPUS_DIR) / path


def read_corpus(filename: Union[str, Path], corpus_dir: Optional[Union[str, Path]] = None) -> str:
    """
    Read a UTF-8 corpus file.

    Raises:
        CorpusNotFoundError: file does not exist
        InvalidInputError: file is empty or whitespace only
    """
    path = resolve_corpus_path(filename, corpus_dir)
    if not path.is_file():
        raise CorpusNotFoundError(f"File not found: {path}")

    content = path.read_text(encoding="utf-8")
    if not content.strip():
        raise InvalidInputError(f"File {path.name} is empty or contains only whitespace")
    return content
