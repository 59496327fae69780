from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path, PurePath, PurePosixPath

from .config import ErrorPolicy, MirrorConfig
from .error_policy import run_with_policy
from .errors import EntryReadError, MirrorError, ValidationError
from .filesystem import MirrorDestination, MirrorSource
from .local_fs import LocalFileSystem
from .mirror_builder import NodeMirrorBuilder, mirror_entry, reapply_directory_dates
from .models import EntryResult, NodeType, RelativeEntry, RunOutcome
from .tree_walk import TreeWalk


def mirror_single_entry(
    source_path: Path,
    destination_path: PurePath,
    config: MirrorConfig | None = None,
    *,
    source: MirrorSource | None = None,
    destination: MirrorDestination | None = None,
) -> EntryResult:
    """Mirror one entry; `destination_path` names the mirror itself."""
    local = LocalFileSystem()
    source = source or local
    destination = destination or local
    config = config or MirrorConfig()

    if not os.path.lexists(source_path):
        raise ValidationError(f'No such file "{source_path}"')
    if destination.node_type(destination_path.parent) != NodeType.DIR:
        raise ValidationError(f'No such output directory "{destination_path.parent}"')

    relpath = PurePosixPath(Path(source_path).name)
    try:
        snapshot = source.read_snapshot(source_path)
    except OSError as exc:
        return EntryResult(relpath=relpath, error=EntryReadError(relpath, exc))

    builder = NodeMirrorBuilder(config, source, destination)
    try:
        builder.mirror(relpath, snapshot, source_path, destination_path)
    except MirrorError as exc:
        return EntryResult(relpath=relpath, error=exc)
    return EntryResult(relpath=relpath)


def mirror_tree(
    source_root: Path,
    destination_root: PurePath,
    config: MirrorConfig | None = None,
    policy: ErrorPolicy = ErrorPolicy.ABORT,
    *,
    source: MirrorSource | None = None,
    destination: MirrorDestination | None = None,
    on_success: Callable[[PurePosixPath], None] | None = None,
    on_skip: Callable[[EntryResult], None] | None = None,
) -> RunOutcome:
    """Mirror the contents of `source_root` into the existing `destination_root`.

    Once the walk is done, directory dates are written again, deepest first,
    since creating their children moved them.
    """
    local = LocalFileSystem()
    source = source or local
    destination = destination or local
    config = config or MirrorConfig()

    if not os.path.isdir(source_root):
        raise ValidationError(f'No such input directory "{source_root}"')
    if destination.node_type(destination_root) != NodeType.DIR:
        raise ValidationError(f'No such output directory "{destination_root}"')

    builder = NodeMirrorBuilder(config, source, destination)
    directories: list[RelativeEntry] = []

    def mirror(entry: RelativeEntry) -> EntryResult:
        result = mirror_entry(builder, entry, source_root, destination_root)
        if result.ok and entry.snapshot.node_type == NodeType.DIR:
            directories.append(entry)
        return result

    def restore_directory_dates() -> Iterator[EntryResult]:
        for entry in reversed(directories):
            yield reapply_directory_dates(builder, entry, destination_root)

    return run_with_policy(
        TreeWalk(source, source_root),
        mirror,
        policy,
        on_success=on_success,
        on_skip=on_skip,
        finalize=restore_directory_dates,
    )
