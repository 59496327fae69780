from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import PurePath, PurePosixPath
from typing import TypeAlias

from .errors import EntryReadError, TraversalError
from .filesystem import MirrorSource
from .models import NodeType, RelativeEntry


@dataclass(frozen=True)
class EntryReadFailure:
    relpath: PurePosixPath
    error: EntryReadError


WalkItem: TypeAlias = RelativeEntry | EntryReadFailure


class TreeWalk:
    """Lazy pre-order walk of `root`, yielding entries relative to it.

    Children are visited in sorted name order, right after their directory.
    If a directory listing fails the walk ends early and the failure is kept
    in `traversal_error`; the items already yielded remain valid.
    """

    def __init__(self, source: MirrorSource, root: PurePath) -> None:
        self.source = source
        self.root = root
        self.traversal_error: TraversalError | None = None
        self._started = False

    def __iter__(self) -> Iterator[WalkItem]:
        if self._started:
            raise RuntimeError("TreeWalk can only be iterated once")
        self._started = True
        return self._walk()

    def _list(self, relpath: PurePosixPath) -> Iterator[str] | None:
        try:
            names = self.source.list_directory(self.root / relpath)
        except OSError as exc:
            self.traversal_error = TraversalError(relpath, exc)
            return None
        return iter(names)

    def _walk(self) -> Iterator[WalkItem]:
        top = self._list(PurePosixPath("."))
        if top is None:
            return
        stack: list[tuple[PurePosixPath, Iterator[str]]] = [(PurePosixPath("."), top)]
        while stack:
            parent, names = stack[-1]
            name = next(names, None)
            if name is None:
                stack.pop()
                continue
            relpath = parent / name
            try:
                snapshot = self.source.read_snapshot(self.root / relpath)
            except OSError as exc:
                yield EntryReadFailure(relpath, EntryReadError(relpath, exc))
                continue

            yield RelativeEntry(relpath=relpath, snapshot=snapshot)

            if snapshot.node_type == NodeType.DIR:
                children = self._list(relpath)
                if children is None:
                    return
                stack.append((relpath, children))
