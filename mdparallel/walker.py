"""Enumerates Markdown files under an input path and maps them to outputs."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, List, Tuple

from .documents import is_markdown
from .errors import InputPathError, InvalidTargetError

logger = logging.getLogger(__name__)

FilePair = Tuple[Path, Path]


class MarkdownWalker:
    """Restartable iterable of ``(input file, output file)`` pairs.

    Directories are walked depth first: a directory's files (sorted by name)
    come before its subdirectories. The root is depth 0 and nothing below
    ``max_depth`` is visited. Output directories are not created here.
    """

    def __init__(self, input_path: Path, output_path: Path, max_depth: int = 0) -> None:
        self.input_path = Path(input_path)
        self.output_path = Path(output_path)
        self.max_depth = max(0, max_depth)

        if not self.input_path.exists():
            raise InputPathError(f"Input path {self.input_path} does not exist.")
        if not os.access(self.input_path, os.R_OK):
            raise InputPathError(f"Input path {self.input_path} is not readable.")

        if self.input_path.is_dir():
            if self.output_path.is_file() or (
                not self.output_path.exists() and self.output_path.suffix
            ):
                raise InvalidTargetError(
                    f"Input {self.input_path} is a directory, so the output "
                    f"{self.output_path} must be a directory too."
                )
        elif self.output_path.is_dir() or not self.output_path.suffix:
            raise InvalidTargetError(
                f"Input {self.input_path} is a file, so the output "
                f"{self.output_path} must be a file path."
            )

    @property
    def is_single_file(self) -> bool:
        return not self.input_path.is_dir()

    def __iter__(self) -> Iterator[FilePair]:
        if self.is_single_file:
            yield self.input_path, self.output_path
            return
        yield from self._walk(self.input_path, 0)

    def _walk(self, directory: Path, depth: int) -> Iterator[FilePair]:
        try:
            entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
        except OSError as exc:
            if directory == self.input_path:
                raise InputPathError(f"Cannot list {directory}: {exc}") from exc
            logger.warning("Skipping unreadable directory %s: %s", directory, exc)
            return

        subdirectories: List[Path] = []
        for entry in entries:
            if entry.is_symlink() and entry.is_dir():
                logger.debug("Not following symlinked directory %s", entry)
                continue
            if entry.is_dir():
                subdirectories.append(entry)
            elif entry.is_file() and is_markdown(entry):
                yield entry, self._output_for(entry)

        if depth >= self.max_depth:
            return
        for subdirectory in subdirectories:
            if self._is_output_directory(subdirectory):
                logger.debug("Not descending into output directory %s", subdirectory)
                continue
            yield from self._walk(subdirectory, depth + 1)

    def _output_for(self, path: Path) -> Path:
        return self.output_path / path.relative_to(self.input_path)

    def _is_output_directory(self, directory: Path) -> bool:
        try:
            return directory.resolve() == self.output_path.resolve()
        except OSError:
            return False
