"""Directory scanning utilities for bulk sync."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from ..models import PathConfig
from .paths import is_hidden

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalEntry:
    """A directory entry found while walking the local tree."""

    path: Path
    """Absolute path of the entry"""

    is_dir: bool
    """Whether the entry is a directory (symlinked directories are not)"""

    is_file: bool = False
    """Whether the entry is a regular file"""


def walk_entries(
    directory: Path, prune: Optional[Callable[[Path], bool]] = None
) -> Iterator[LocalEntry]:
    """Lazily walk a directory tree, depth first, entries sorted by name.

    Args:
        directory: Directory to walk
        prune: Optional predicate; matching directories are not descended into

    Yields:
        LocalEntry for every entry below ``directory``. Symlinked
        directories are yielded but not descended into.
    """
    try:
        items = sorted(directory.iterdir(), key=lambda p: p.name)
    except PermissionError as e:
        logger.warning(f"Permission denied: {e}")
        return

    for item in items:
        is_dir = item.is_dir() and not item.is_symlink()
        yield LocalEntry(path=item, is_dir=is_dir, is_file=item.is_file())
        if is_dir and not (prune is not None and prune(item)):
            yield from walk_entries(item, prune)


def exclude_hidden(
    entries: Iterable[LocalEntry], config: PathConfig
) -> Iterator[LocalEntry]:
    """Drop entries with a path component starting with a dot."""
    return (entry for entry in entries if not is_hidden(entry.path, config))


def only_files(entries: Iterable[LocalEntry]) -> Iterator[Path]:
    """Keep regular files; sockets, FIFOs and dangling links are dropped."""
    return (entry.path for entry in entries if entry.is_file)


class DirectoryScanner:
    """Restartable, lazy sequence of the non-hidden files below a root.

    Every iteration walks the file system again.

    Examples:
        >>> scanner = DirectoryScanner(Path("/sync/folder"), config)
        >>> files = list(scanner)
    """

    def __init__(self, root: Path, config: PathConfig):
        """Initialize directory scanner.

        Args:
            root: Directory to scan
            config: Path configuration used for hidden entry detection
        """
        self.root = Path(root)
        self.config = config

    def _prune(self, directory: Path) -> bool:
        return is_hidden(directory, self.config)

    def __iter__(self) -> Iterator[Path]:
        entries = walk_entries(self.root, prune=self._prune)
        return only_files(exclude_hidden(entries, self.config))

    def scan(self) -> list[Path]:
        """Collect all files upfront."""
        return list(self)
