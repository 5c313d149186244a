"""
Helpers to validate and decompose namespace paths.

Paths are absolute and `/`-delimited, e.g. `/app/config`. The root path is
`/`. A "sub-path" additionally permits omitting the leading `/`, e.g.
`config/db`, for composing paths relative to another path.
"""

from __future__ import annotations

from typing import Iterator

from .exceptions import InvalidPathError

__all__ = [
    "ROOT",
    "is_valid_path",
    "is_valid_sub_path",
    "validate_path",
    "get_parent",
    "get_name",
    "join_path",
    "iter_ancestors",
]

ROOT = "/"
"""
Root path of the namespace.
"""


def is_valid_path(path: str, allow_sub_path: bool = False) -> bool:
    """
    Check whether the given path is well-formed.

    :param path: Path to check
    :param allow_sub_path: Also accept paths without a leading `/`
    """
    if path == ROOT:
        return True

    if not path or path.endswith("/"):
        return False

    if path.startswith("/"):
        path = path[1:]
    elif not allow_sub_path:
        return False

    # rejects consecutive slashes
    return all(path.split("/"))


def is_valid_sub_path(path: str) -> bool:
    return is_valid_path(path, allow_sub_path=True)


def validate_path(path: str) -> str:
    """
    Return the path unchanged if valid, otherwise raise
    {obj}`InvalidPathError`.
    """
    if not isinstance(path, str) or not is_valid_path(path):
        raise InvalidPathError(str(path))
    return path


def get_parent(path: str) -> str | None:
    """
    Get the parent of an absolute path, or `None` for the root.
    """
    if path == ROOT:
        return None

    parent = path.rsplit("/", 1)[0]
    return parent or ROOT


def get_name(path: str) -> str:
    """
    Get the final segment of a path; empty for the root.
    """
    return path.rsplit("/", 1)[-1]


def join_path(parent: str, sub_path: str) -> str:
    """
    Append a sub-path to an absolute path.
    """
    if not is_valid_sub_path(sub_path):
        raise InvalidPathError(sub_path, "not a valid sub-path")

    sub_path = sub_path.lstrip("/")
    if not sub_path:
        return parent

    return f"{parent.rstrip('/')}/{sub_path}"


def iter_ancestors(path: str) -> Iterator[str]:
    """
    Yield proper ancestors of an absolute path from the top down, excluding
    the root, e.g. `/a/b/c` yields `/a` then `/a/b`.
    """
    segments = path.strip("/").split("/")
    for i in range(1, len(segments)):
        yield "/" + "/".join(segments[:i])
