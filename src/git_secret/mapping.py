"""Persistent registry of tracked files and their last-encrypted content hash.

The store is a plain text file with one entry per line, either ``path`` or
``path:fingerprint``. Every mutating call re-reads the file, applies the change,
and writes the whole file back; nothing is cached between calls. Concurrent
writers are not coordinated and the last writer wins.
"""

import contextlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME
from .errors import MappingParseError

logger = logging.getLogger(APP_NAME)

_FINGERPRINT_RE = re.compile(r"^[0-9a-f]{64}$")


@dataclass
class PathMappingEntry:
    """A single tracked file.

    Attributes:
        file_path (str): Root-relative, forward-slash normalized path.
        fingerprint (str | None): Hex SHA-256 of the plaintext at the last
            successful encryption, or None if not encrypted since the last
            invalidation.
    """

    file_path: str
    fingerprint: str | None = None

    def render(self) -> str:
        if self.fingerprint:
            return f"{self.file_path}:{self.fingerprint}"
        return self.file_path


def parse_line(line: str, line_no: int = 0) -> PathMappingEntry:
    """Parses one stored line.

    The fingerprint is split off the last ``:`` only when the remainder looks
    like a SHA-256 hex digest, so paths that contain a colon are kept intact.
    A trailing ``:`` with nothing after it reads as "no fingerprint".

    Raises:
        MappingParseError: If the line has no path component.
    """
    path, sep, tail = line.rpartition(":")
    if sep and (not tail or _FINGERPRINT_RE.match(tail)):
        entry = PathMappingEntry(path, tail or None)
    else:
        entry = PathMappingEntry(line)

    if not entry.file_path:
        raise MappingParseError(line_no, line)
    return entry


class PathMappingStore:
    """File-backed mapping of tracked paths to content fingerprints.

    Attributes:
        path (Path): Location of the mapping file.
    """

    def __init__(self, path: Path):
        self.path = path

    def list_entries(self) -> list[PathMappingEntry]:
        """Returns every entry in insertion order.

        Returns:
            list[PathMappingEntry]: The stored entries; empty if the file does
            not exist yet.
        """
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        entries = []
        for line_no, raw in enumerate(content.splitlines(), start=1):
            line = raw.strip()
            if line:
                entries.append(parse_line(line, line_no))
        return entries

    def _write(self, entries: list[PathMappingEntry]) -> None:
        """Replaces the mapping file atomically with `entries`."""
        tmp_file = self.path.with_name(f"{self.path.name}.tmp")
        content = "".join(f"{entry.render()}\n" for entry in entries)

        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_file, self.path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp_file.unlink()
            raise

    def has(self, file_path: str) -> bool:
        return any(e.file_path == file_path for e in self.list_entries())

    def add(self, file_path: str, fingerprint: str | None = None) -> bool:
        """Starts tracking `file_path`.

        Returns:
            bool: True if an entry was inserted, False if it was already present.
        """
        entries = self.list_entries()
        if any(e.file_path == file_path for e in entries):
            return False
        entries.append(PathMappingEntry(file_path, fingerprint))
        self._write(entries)
        return True

    def remove(self, file_path: str) -> bool:
        """Stops tracking `file_path`.

        Returns:
            bool: True if an entry was deleted, False if none matched.
        """
        entries = self.list_entries()
        remaining = [e for e in entries if e.file_path != file_path]
        if len(remaining) == len(entries):
            return False
        self._write(remaining)
        return True

    def get_fingerprint(self, file_path: str) -> str | None:
        for entry in self.list_entries():
            if entry.file_path == file_path:
                return entry.fingerprint
        return None

    def set_fingerprint(self, file_path: str, value: str) -> bool:
        """Records the fingerprint of the plaintext that was just encrypted.

        Returns:
            bool: True if the entry existed and was updated.
        """
        entries = self.list_entries()
        for entry in entries:
            if entry.file_path == file_path:
                entry.fingerprint = value
                self._write(entries)
                return True
        return False

    def clear_all_fingerprints(self) -> None:
        """Forgets every stored fingerprint so the next hide re-encrypts all files."""
        entries = self.list_entries()
        for entry in entries:
            entry.fingerprint = None
        if entries:
            self._write(entries)
        logger.debug(f"Cleared fingerprints for {len(entries)} tracked file(s).")
