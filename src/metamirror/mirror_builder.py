from __future__ import annotations

from pathlib import PurePath, PurePosixPath

from .attributes import DATE_KEYS, AttributePayload, build_payload, select_attributes
from .config import FINDER_FLAG_IS_ALIAS, MirrorConfig
from .errors import (
    DirectoryCreationError,
    ExtendedAttributesCopyError,
    FileCreationError,
    FlagsCopyError,
    LinkCopyError,
    MirrorError,
    TypeConflictError,
    UnsupportedFileTypeError,
)
from .filesystem import MirrorDestination, MirrorSource
from .models import EntryResult, MetadataSnapshot, NodeType, RelativeEntry
from .xattrs import copy_extended_attributes

_CREATION_ERRORS: dict[NodeType, type[MirrorError]] = {
    NodeType.DIR: DirectoryCreationError,
    NodeType.FILE: FileCreationError,
    NodeType.SYMLINK: LinkCopyError,
    NodeType.ALIAS: LinkCopyError,
}


class NodeMirrorBuilder:
    """Create or reconcile one destination entry from a source snapshot.

    Each call raises at most one `MirrorError`; the steps after a failure
    are not attempted.
    """

    def __init__(
        self,
        config: MirrorConfig,
        source: MirrorSource,
        destination: MirrorDestination,
    ) -> None:
        self.config = config
        self.source = source
        self.destination = destination
        self.selection = select_attributes(config)

    def mirror(
        self,
        relpath: PurePosixPath,
        snapshot: MetadataSnapshot,
        source_path: PurePath,
        destination_path: PurePath,
    ) -> None:
        node_type = snapshot.node_type
        if node_type == NodeType.UNSUPPORTED:
            raise UnsupportedFileTypeError(relpath)

        try:
            existing = self.destination.node_type(destination_path)
        except OSError as exc:
            raise _CREATION_ERRORS[node_type](relpath, exc) from exc
        if existing is not None and not self._same_kind(node_type, existing):
            raise TypeConflictError(relpath)

        payload = build_payload(self.selection, snapshot)

        if node_type == NodeType.SYMLINK:
            self._mirror_symlink(relpath, snapshot, source_path, destination_path, existing)
        elif node_type == NodeType.ALIAS:
            self._mirror_alias(
                relpath, snapshot, payload, source_path, destination_path, existing
            )
        elif node_type == NodeType.DIR:
            self._mirror_directory(relpath, payload, destination_path, existing)
        else:
            self._mirror_file(relpath, payload, destination_path, existing)

        if (
            self.config.copy_extended_attributes
            and snapshot.may_have_extended_attributes
            and node_type != NodeType.SYMLINK
        ):
            try:
                copy_extended_attributes(
                    self.source, source_path, self.destination, destination_path
                )
            except OSError as exc:
                raise ExtendedAttributesCopyError(relpath, exc) from exc

        if payload.resource_properties:
            try:
                self.destination.set_flags(destination_path, payload.resource_properties)
            except OSError as exc:
                raise FlagsCopyError(relpath, exc) from exc

    def _mirror_symlink(
        self,
        relpath: PurePosixPath,
        snapshot: MetadataSnapshot,
        source_path: PurePath,
        destination_path: PurePath,
        existing: NodeType | None,
    ) -> None:
        # An existing link is kept as is, whatever it points to.
        if existing is not None:
            return
        try:
            target = snapshot.link_target
            if target is None:
                target = self.source.read_link(source_path)
            self.destination.make_symlink(target, destination_path)
        except FileExistsError:
            return
        except OSError as exc:
            raise LinkCopyError(relpath, exc) from exc

    def _same_kind(self, node_type: NodeType, existing: NodeType) -> bool:
        if existing == node_type:
            return True
        return (
            node_type == NodeType.ALIAS
            and existing == NodeType.FILE
            and not self.destination.supports_aliases
        )

    def _mirror_alias(
        self,
        relpath: PurePosixPath,
        snapshot: MetadataSnapshot,
        payload: AttributePayload,
        source_path: PurePath,
        destination_path: PurePath,
        existing: NodeType | None,
    ) -> None:
        try:
            if existing is None:
                try:
                    self.destination.write_new_file(
                        destination_path, self.source.read_bytes(source_path)
                    )
                except FileExistsError:
                    pass
            # The alias flag is part of the link itself, whatever the xattr setting.
            if self.destination.supports_aliases:
                finder_flags = snapshot.finder_flags
                if finder_flags is None:
                    finder_flags = FINDER_FLAG_IS_ALIAS
                self.destination.set_finder_flags(destination_path, finder_flags)
            # Copying the alias bytes does not carry its attributes.
            self.destination.set_attributes(destination_path, payload.file_attributes)
        except OSError as exc:
            raise LinkCopyError(relpath, exc) from exc

    def _mirror_directory(
        self,
        relpath: PurePosixPath,
        payload: AttributePayload,
        destination_path: PurePath,
        existing: NodeType | None,
    ) -> None:
        try:
            if existing is None:
                try:
                    self.destination.make_directory(
                        destination_path, payload.file_attributes
                    )
                    return
                except FileExistsError:
                    pass
            self.destination.set_attributes(destination_path, payload.file_attributes)
        except OSError as exc:
            raise DirectoryCreationError(relpath, exc) from exc

    def _mirror_file(
        self,
        relpath: PurePosixPath,
        payload: AttributePayload,
        destination_path: PurePath,
        existing: NodeType | None,
    ) -> None:
        try:
            if existing is None:
                try:
                    self.destination.create_empty_file(
                        destination_path, payload.file_attributes
                    )
                    return
                except FileExistsError:
                    pass
            self.destination.set_attributes(destination_path, payload.file_attributes)
        except OSError as exc:
            raise FileCreationError(relpath, exc) from exc


def mirror_entry(
    builder: NodeMirrorBuilder,
    entry: RelativeEntry,
    source_root: PurePath,
    destination_root: PurePath,
) -> EntryResult:
    try:
        builder.mirror(
            entry.relpath,
            entry.snapshot,
            source_root / entry.relpath,
            destination_root / entry.relpath,
        )
    except MirrorError as exc:
        return EntryResult(relpath=entry.relpath, error=exc)
    return EntryResult(relpath=entry.relpath)


def reapply_directory_dates(
    builder: NodeMirrorBuilder,
    entry: RelativeEntry,
    destination_root: PurePath,
) -> EntryResult:
    """Write the dates of a mirrored directory again once its children exist."""
    payload = build_payload(builder.selection, entry.snapshot)
    dates = {
        key: value
        for key, value in payload.file_attributes.items()
        if key in DATE_KEYS
    }
    if dates:
        try:
            builder.destination.set_attributes(destination_root / entry.relpath, dates)
        except OSError as exc:
            return EntryResult(
                relpath=entry.relpath, error=DirectoryCreationError(entry.relpath, exc)
            )
    return EntryResult(relpath=entry.relpath)
