"""Markdown document loading and saving."""

from __future__ import annotations

import pathlib

from .errors import DocumentError, OverwriteRefusedError
from .structures import Document

MARKDOWN_SUFFIXES = frozenset({".md", ".markdown", ".mdx"})


def is_markdown(path: pathlib.Path) -> bool:
    return path.suffix.lower() in MARKDOWN_SUFFIXES


class MarkdownDocumentHandler:
    """Reads a Markdown source and writes its translated rendition.

    Files are read and written as UTF-8 with newline translation disabled so
    ``\\r\\n`` line endings survive the round trip.
    """

    def __init__(self, source_path: pathlib.Path):
        self.source_path = source_path

    def load(self) -> Document:
        try:
            with self.source_path.open("r", encoding="utf-8", newline="") as handle:
                content = handle.read()
        except UnicodeDecodeError as exc:
            raise DocumentError(
                f"{self.source_path} is not valid UTF-8: {exc.reason}"
            ) from exc
        except OSError as exc:
            raise DocumentError(f"Cannot read {self.source_path}: {exc}") from exc
        return Document(source_path=str(self.source_path), content=content)

    def check_destination(self, destination: pathlib.Path, *, force_overwrite: bool) -> None:
        """Validate the destination against the source and the overwrite flag."""

        if destination.resolve() == self.source_path.resolve():
            raise OverwriteRefusedError(
                "The output path matches the input document. Refusing to "
                "overwrite the source file."
            )
        if destination.exists() and not force_overwrite:
            raise OverwriteRefusedError(
                f"{destination} already exists. Use --force to overwrite it."
            )

    def save(self, destination: pathlib.Path, content: str) -> None:
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with destination.open("w", encoding="utf-8", newline="") as handle:
                handle.write(content)
        except OSError as exc:
            raise DocumentError(f"Cannot write {destination}: {exc}") from exc
