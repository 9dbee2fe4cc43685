"""Append-only ledger of processed post identifiers.

The ledger is a UTF-8 text file holding one post identifier per line. It is
read fully at startup and only ever appended to, so entries written by
earlier runs are never rewritten.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from .errors import LedgerError


def load_ledger(path: Path) -> set[str]:
    """Read every identifier from the ledger file.

    Args:
        path: Location of the ledger file

    Returns:
        The set of identifiers; empty if the file does not exist

    Raises:
        LedgerError: If the file exists but cannot be read
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return set()
    except (OSError, UnicodeDecodeError) as exc:
        raise LedgerError(f"failed to read ledger {path}: {exc}") from exc
    return {line.strip() for line in text.splitlines() if line.strip()}


def append_ledger(path: Path, identifiers: Iterable[str]) -> None:
    """Append identifiers to the ledger file, one per line.

    Raises:
        LedgerError: If the file cannot be created or written
    """
    lines = [ident for ident in identifiers if ident]
    if not lines:
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            for ident in lines:
                handle.write(ident)
                handle.write("\n")
    except OSError as exc:
        raise LedgerError(f"failed to append to ledger {path}: {exc}") from exc


class DedupLedger:
    """In-memory view of the ledger file.

    Workers only read from the ledger; identifiers are added through
    ``commit``, which writes them to disk before recording them in memory.

    Attributes:
        path: Location of the backing ledger file
    """

    def __init__(self, path: Path, identifiers: set[str] | None = None):
        self.path = path
        self._identifiers: set[str] = set(identifiers or ())

    @classmethod
    def load(cls, path: Path) -> "DedupLedger":
        return cls(path, load_ledger(path))

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._identifiers

    def __len__(self) -> int:
        return len(self._identifiers)

    def commit(self, identifiers: Iterable[str]) -> list[str]:
        """Record identifiers in memory and append the new ones to disk.

        Returns:
            The identifiers that were actually appended
        """
        new = [
            ident
            for ident in dict.fromkeys(identifiers)
            if ident and ident not in self._identifiers
        ]
        append_ledger(self.path, new)
        self._identifiers.update(new)
        return new
