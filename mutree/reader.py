"""
mutree Sequence Readers

A SequenceReader turns a source (usually a file path) into the symbols of
one sequence. File formats such as FASTA or GenBank are left to external
readers that implement this interface; mutree ships only the two trivial
ones below.

Usage:
    reader = get_reader("lines")
    root = reader.read("sequences.txt", index=2)
    tree = MutationTree(root)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union


class ReaderError(Exception):
    """A source could not produce the requested sequence."""
    def __init__(self, message: str, source: object = None):
        src = f" ({source})" if source is not None else ""
        super().__init__(f"{message}{src}")
        self.source = source


Source = Union[str, Path]


class SequenceReader(ABC):
    """Base class for sequence ingestion.

    Subclasses implement:
        - name: Registry key
        - parse(): Extract sequence `index` from already-loaded text
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def parse(self, text: str, index: int) -> str:
        """Return sequence number `index` contained in `text`."""
        ...

    def read(self, source: Source, index: int = 0) -> str:
        """Read sequence number `index` from a file.

        Raises:
            ReaderError: the file is missing, unreadable, or has no such index
        """
        if index < 0:
            raise ReaderError(f"Index must be >= 0, got {index}", source)
        path = Path(source)
        try:
            text = path.read_text(encoding="ascii")
        except FileNotFoundError:
            raise ReaderError("File not found", source)
        except (OSError, UnicodeDecodeError) as e:
            raise ReaderError(f"Cannot read file: {e}", source)
        return self.parse(text, index)

    def __repr__(self) -> str:
        return f"<SequenceReader:{self.name}>"


class RawReader(SequenceReader):
    """The whole file is one sequence; all whitespace is dropped."""

    @property
    def name(self) -> str:
        return "raw"

    def parse(self, text: str, index: int) -> str:
        if index != 0:
            raise ReaderError(f"Raw sources hold a single sequence, asked for index {index}")
        return "".join(text.split())


class LineReader(SequenceReader):
    """One sequence per non-empty line."""

    @property
    def name(self) -> str:
        return "lines"

    def parse(self, text: str, index: int) -> str:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if index >= len(lines):
            raise ReaderError(f"Index {index} out of range, source holds {len(lines)} sequence(s)")
        return lines[index]


READERS: dict[str, SequenceReader] = {
    reader.name: reader for reader in (RawReader(), LineReader())
}


def get_reader(name: str) -> SequenceReader:
    """Retrieve a registered reader by name."""
    if name not in READERS:
        raise KeyError(f"Unknown reader '{name}'. Registered: {list(READERS)}")
    return READERS[name]


def register_reader(reader: SequenceReader) -> None:
    """Make an external reader available to scripts and the CLI."""
    READERS[reader.name] = reader
