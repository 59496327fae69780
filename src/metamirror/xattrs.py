from __future__ import annotations

import errno
import os
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import AttributeIOError

if TYPE_CHECKING:
    from .filesystem import MirrorDestination, MirrorSource

XATTR_SUPPORTED = hasattr(os, "listxattr")


def _unsupported(path: Path, name: str | None = None) -> AttributeIOError:
    return AttributeIOError(errno.ENOTSUP, path=path, name=name)


def _wrap(exc: OSError, path: Path, name: str | None = None) -> AttributeIOError:
    return AttributeIOError(
        exc.errno or errno.EIO, exc.strerror or str(exc), path=path, name=name
    )


def list_xattrs(path: Path) -> list[str]:
    if not XATTR_SUPPORTED:
        raise _unsupported(path)
    try:
        return os.listxattr(path, follow_symlinks=False)
    except OSError as exc:
        raise _wrap(exc, path) from exc


def read_xattr(path: Path, name: str) -> bytes:
    # os.getxattr queries the value size and fills an exactly sized buffer.
    if not XATTR_SUPPORTED:
        raise _unsupported(path, name)
    try:
        return os.getxattr(path, name, follow_symlinks=False)
    except OSError as exc:
        raise _wrap(exc, path, name) from exc


def write_xattr(path: Path, name: str, value: bytes) -> None:
    if not XATTR_SUPPORTED:
        raise _unsupported(path, name)
    try:
        os.setxattr(path, name, value, follow_symlinks=False)
    except OSError as exc:
        raise _wrap(exc, path, name) from exc


def copy_extended_attributes(
    source: MirrorSource,
    source_path: Path,
    destination: MirrorDestination,
    destination_path: Path,
) -> list[str]:
    """Copy every extended attribute of `source_path` onto `destination_path`.

    Stops at the first failing name; earlier names stay applied.
    Returns the copied names.
    """
    copied: list[str] = []
    for name in source.list_xattrs(source_path):
        value = source.get_xattr(source_path, name)
        destination.set_xattr(destination_path, name, value)
        copied.append(name)
    return copied
