from __future__ import annotations

from collections.abc import Mapping
from pathlib import PurePath
from typing import Any, Protocol

from .attributes import AttributeKey
from .models import MetadataSnapshot, NodeType


class MirrorSource(Protocol):
    """Read side of a mirror run; paths are absolute on the source host."""

    def list_directory(self, path: PurePath) -> list[str]: ...

    def read_snapshot(self, path: PurePath) -> MetadataSnapshot: ...

    def read_link(self, path: PurePath) -> str: ...

    def read_bytes(self, path: PurePath) -> bytes: ...

    def list_xattrs(self, path: PurePath) -> list[str]: ...

    def get_xattr(self, path: PurePath, name: str) -> bytes: ...


class MirrorDestination(Protocol):
    """Write side of a mirror run.

    `node_type` returns None for a missing path. Creation calls fail with
    `FileExistsError` when the path already exists. A destination without
    `supports_aliases` stores aliases as regular files and reads them back
    as such.
    """

    supports_aliases: bool

    def node_type(self, path: PurePath) -> NodeType | None: ...

    def make_directory(
        self, path: PurePath, attributes: Mapping[AttributeKey, Any]
    ) -> None: ...

    def create_empty_file(
        self, path: PurePath, attributes: Mapping[AttributeKey, Any]
    ) -> None: ...

    def make_symlink(self, target: str, path: PurePath) -> None: ...

    def write_new_file(self, path: PurePath, data: bytes) -> None: ...

    def set_attributes(
        self, path: PurePath, attributes: Mapping[AttributeKey, Any]
    ) -> None: ...

    def set_flags(self, path: PurePath, flags: Mapping[AttributeKey, Any]) -> None: ...

    def set_finder_flags(self, path: PurePath, flags: int) -> None: ...

    def set_xattr(self, path: PurePath, name: str, value: bytes) -> None: ...
