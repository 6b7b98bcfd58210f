"""Local to remote path mapping and hidden entry filtering."""

from __future__ import annotations

import logging
import os
import posixpath
import re
from typing import Union

from ..models import PathConfig

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")
_LEADING_SEPARATOR = re.compile(r"^/")
_REPEATED_SEPARATORS = re.compile(r"/{2,}")


def to_posix(path: PathLike) -> str:
    """Return the path as a string with forward slashes only."""
    return os.fspath(path).replace("\\", "/")


def map_remote_path(local_path: PathLike, config: PathConfig) -> str:
    """Map a local absolute path to its remote path.

    The local base path is removed with a plain, case-sensitive replace of
    its first occurrence; it is not anchored at the start of the path. A
    path outside the local base therefore maps to an unintended remote
    path instead of raising.

    Args:
        local_path: Local absolute path
        config: Path configuration

    Returns:
        Remote path with forward slashes

    Examples:
        >>> config = PathConfig("/home/u/proj", "/dav/sync")
        >>> map_remote_path("/home/u/proj/src/a.txt", config)
        '/dav/sync/src/a.txt'
        >>> map_remote_path("C:/home/u/proj/a.txt", config)
        '/dav/sync/a.txt'
    """
    local = to_posix(local_path)
    base = to_posix(config.local_base_path)

    suffix = local.replace(base, "", 1) if base else local
    suffix = _LEADING_SEPARATOR.sub("", suffix)
    suffix = _DRIVE_LETTER.sub("", suffix)
    suffix = _LEADING_SEPARATOR.sub("", suffix)
    suffix = _REPEATED_SEPARATORS.sub("/", suffix)

    remote_base = to_posix(config.remote_base_path)
    if remote_base.endswith("/"):
        remote_base = remote_base[:-1]

    if not suffix:
        return remote_base or "/"
    return f"{remote_base}/{suffix}"


def remote_parent(remote_path: str) -> str:
    """Remote directory containing ``remote_path``."""
    return posixpath.dirname(remote_path.rstrip("/")) or "/"


def relative_parts(local_path: PathLike, config: PathConfig) -> list[str]:
    """Components of ``local_path`` relative to the local base path.

    Empty, ``.`` and ``..`` components are dropped. A path outside the
    local base keeps all of its components.
    """
    local = to_posix(local_path)
    base = to_posix(config.local_base_path).rstrip("/")

    if base and (local == base or local.startswith(base + "/")):
        local = local[len(base) :]

    return [part for part in local.split("/") if part not in ("", ".", "..")]


def is_inside(local_path: PathLike, config: PathConfig) -> bool:
    """True if ``local_path`` is the local base path or lies below it."""
    local = to_posix(local_path)
    base = to_posix(config.local_base_path).rstrip("/")
    if not base:
        return False
    return local == base or local.startswith(base + "/")


def relative_display_path(local_path: PathLike, config: PathConfig) -> str:
    """Relative path used in user-facing messages."""
    return "/".join(relative_parts(local_path, config)) or to_posix(local_path)


def is_hidden(local_path: PathLike, config: PathConfig) -> bool:
    """Check whether a path is, or lies inside, a dot-file or dot-directory.

    Examples:
        >>> config = PathConfig("/home/u/proj", "/dav/sync")
        >>> is_hidden("/home/u/proj/.git/config", config)
        True
        >>> is_hidden("/home/u/proj/src/a.txt", config)
        False
    """
    for part in relative_parts(local_path, config):
        if part.startswith("."):
            logger.debug(f"Skipping hidden path: {local_path}")
            return True
    return False
