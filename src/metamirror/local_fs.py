from __future__ import annotations

import errno
import grp
import os
import pwd
import stat
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .attributes import AttributeKey
from .config import FINDER_FLAG_IS_ALIAS, FINDER_INFO_SIZE, FINDER_INFO_XATTR
from .errors import AttributeIOError
from .models import MetadataSnapshot, NodeType
from .xattrs import XATTR_SUPPORTED, list_xattrs, read_xattr, write_xattr

_MISSING_XATTR_ERRNOS = {
    errno.ENODATA,
    getattr(errno, "ENOATTR", errno.ENODATA),
    errno.ENOTSUP,
    errno.EOPNOTSUPP,
}
_EMPTY_CODE = b"\x00\x00\x00\x00"
# Moving the mtime before the birth time drags the birth time back with it.
_BIRTHTIME_SETTABLE = sys.platform == "darwin"


def _owner_name(uid: int) -> str | None:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return None


def _group_name(gid: int) -> str | None:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return None


def _birthtime_ns(st: os.stat_result) -> int | None:
    value = getattr(st, "st_birthtime_ns", None)
    if value is not None:
        return int(value)
    seconds = getattr(st, "st_birthtime", None)
    if seconds is None:
        return None
    return int(seconds * 1_000_000_000)


def _code_or_none(value: bytes) -> bytes | None:
    return None if value == _EMPTY_CODE else value


def _resolve_uid(attributes: Mapping[AttributeKey, Any]) -> int:
    if AttributeKey.OWNER_ID in attributes:
        return int(attributes[AttributeKey.OWNER_ID])
    name = attributes.get(AttributeKey.OWNER_NAME)
    if name is None:
        return -1
    try:
        return pwd.getpwnam(name).pw_uid
    except KeyError:
        return -1


def _resolve_gid(attributes: Mapping[AttributeKey, Any]) -> int:
    if AttributeKey.GROUP_ID in attributes:
        return int(attributes[AttributeKey.GROUP_ID])
    name = attributes.get(AttributeKey.GROUP_NAME)
    if name is None:
        return -1
    try:
        return grp.getgrnam(name).gr_gid
    except KeyError:
        return -1


class LocalFileSystem:
    """Source and destination backed by the local OS calls.

    Finder info (HFS codes, alias flag) is read from the `finder_info_xattr`
    extended attribute when the platform exposes one. It is surfaced through
    snapshots only, never listed as a plain extended attribute.
    """

    def __init__(self, finder_info_xattr: str = FINDER_INFO_XATTR) -> None:
        self.finder_info_xattr = finder_info_xattr
        self.supports_aliases = XATTR_SUPPORTED

    # -- read side --

    def list_directory(self, path: Path) -> list[str]:
        return sorted(os.listdir(path))

    def read_link(self, path: Path) -> str:
        return os.readlink(path)

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def list_xattrs(self, path: Path) -> list[str]:
        # A source filesystem without xattr support simply has none.
        if not XATTR_SUPPORTED:
            return []
        try:
            names = list_xattrs(path)
        except AttributeIOError as exc:
            if exc.errno in {errno.ENOTSUP, errno.EOPNOTSUPP}:
                return []
            raise
        return [name for name in names if name != self.finder_info_xattr]

    def get_xattr(self, path: Path, name: str) -> bytes:
        return read_xattr(path, name)

    def read_finder_info(self, path: Path) -> bytes | None:
        if not XATTR_SUPPORTED:
            return None
        try:
            value = read_xattr(path, self.finder_info_xattr)
        except AttributeIOError as exc:
            if exc.errno in _MISSING_XATTR_ERRNOS:
                return None
            raise
        return value.ljust(FINDER_INFO_SIZE, b"\x00")[:FINDER_INFO_SIZE]

    def _classify(self, path: Path, st: os.stat_result) -> tuple[NodeType, bytes | None]:
        if stat.S_ISDIR(st.st_mode):
            return NodeType.DIR, self.read_finder_info(path)
        if stat.S_ISLNK(st.st_mode):
            return NodeType.SYMLINK, None
        if stat.S_ISREG(st.st_mode):
            finder_info = self.read_finder_info(path)
            if finder_info is not None:
                finder_flags = int.from_bytes(finder_info[8:10], "big")
                if finder_flags & FINDER_FLAG_IS_ALIAS:
                    return NodeType.ALIAS, finder_info
            return NodeType.FILE, finder_info
        return NodeType.UNSUPPORTED, None

    def read_snapshot(self, path: Path) -> MetadataSnapshot:
        st = os.lstat(path)
        node_type, finder_info = self._classify(path, st)
        st_flags = getattr(st, "st_flags", None)
        return MetadataSnapshot(
            node_type=node_type,
            may_have_extended_attributes=(
                XATTR_SUPPORTED and node_type != NodeType.SYMLINK
            ),
            creation_time_ns=_birthtime_ns(st),
            modification_time_ns=st.st_mtime_ns,
            mode=stat.S_IMODE(st.st_mode),
            owner_id=st.st_uid,
            owner_name=_owner_name(st.st_uid),
            group_id=st.st_gid,
            group_name=_group_name(st.st_gid),
            hidden=None if st_flags is None else bool(st_flags & stat.UF_HIDDEN),
            immutable=(
                None if st_flags is None else bool(st_flags & stat.UF_IMMUTABLE)
            ),
            hfs_type_code=None if finder_info is None else _code_or_none(finder_info[0:4]),
            hfs_creator_code=(
                None if finder_info is None else _code_or_none(finder_info[4:8])
            ),
            finder_flags=(
                None if finder_info is None else int.from_bytes(finder_info[8:10], "big")
            ),
            link_target=(
                os.readlink(path) if node_type == NodeType.SYMLINK else None
            ),
        )

    # -- write side --

    def node_type(self, path: Path) -> NodeType | None:
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            return None
        node_type, _finder_info = self._classify(path, st)
        return node_type

    def make_directory(
        self, path: Path, attributes: Mapping[AttributeKey, Any]
    ) -> None:
        os.mkdir(path)
        self.set_attributes(path, attributes)

    def create_empty_file(
        self, path: Path, attributes: Mapping[AttributeKey, Any]
    ) -> None:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o666)
        os.close(fd)
        self.set_attributes(path, attributes)

    def make_symlink(self, target: str, path: Path) -> None:
        os.symlink(target, path)

    def write_new_file(self, path: Path, data: bytes) -> None:
        with open(path, "xb") as handle:
            handle.write(data)

    def set_xattr(self, path: Path, name: str, value: bytes) -> None:
        write_xattr(path, name, value)

    def _patch_finder_info(self, path: Path, patches: dict[int, bytes]) -> None:
        """Overwrite byte ranges of the finder info, keeping the rest."""
        current = self.read_finder_info(path) or bytes(FINDER_INFO_SIZE)
        updated = bytearray(current)
        for offset, value in patches.items():
            updated[offset : offset + len(value)] = value
        if bytes(updated) != current:
            write_xattr(path, self.finder_info_xattr, bytes(updated))

    def _write_hfs_codes(
        self, path: Path, attributes: Mapping[AttributeKey, Any]
    ) -> None:
        patches = {}
        type_code = attributes.get(AttributeKey.HFS_TYPE_CODE)
        if type_code is not None:
            patches[0] = bytes(type_code)[:4].ljust(4, b"\x00")
        creator_code = attributes.get(AttributeKey.HFS_CREATOR_CODE)
        if creator_code is not None:
            patches[4] = bytes(creator_code)[:4].ljust(4, b"\x00")
        if patches and XATTR_SUPPORTED:
            self._patch_finder_info(path, patches)

    def set_finder_flags(self, path: Path, flags: int) -> None:
        self._patch_finder_info(path, {8: int(flags).to_bytes(2, "big")})

    def _write_dates(
        self, path: Path, attributes: Mapping[AttributeKey, Any]
    ) -> None:
        birth_ns = attributes.get(AttributeKey.CREATION_TIME)
        mtime_ns = attributes.get(AttributeKey.MODIFICATION_TIME)
        if not _BIRTHTIME_SETTABLE:
            birth_ns = None
        if birth_ns is None and mtime_ns is None:
            return
        st = os.stat(path)
        if birth_ns is not None:
            os.utime(path, ns=(st.st_atime_ns, int(birth_ns)))
        final_mtime_ns = st.st_mtime_ns if mtime_ns is None else int(mtime_ns)
        os.utime(path, ns=(st.st_atime_ns, final_mtime_ns))

    def set_attributes(
        self, path: Path, attributes: Mapping[AttributeKey, Any]
    ) -> None:
        """Apply file attributes; keys the platform can't write are skipped.

        Order: finder info, ownership, mode, then times. The birth time is
        only written where moving the mtime back also moves it (macOS).
        """
        if not attributes:
            return
        self._write_hfs_codes(path, attributes)
        uid = _resolve_uid(attributes)
        gid = _resolve_gid(attributes)
        if uid != -1 or gid != -1:
            os.chown(path, uid, gid)
        if AttributeKey.MODE in attributes:
            os.chmod(path, int(attributes[AttributeKey.MODE]))
        self._write_dates(path, attributes)

    def set_flags(self, path: Path, flags: Mapping[AttributeKey, Any]) -> None:
        if not flags:
            return
        wanted = {
            stat.UF_HIDDEN: flags.get(AttributeKey.HIDDEN),
            stat.UF_IMMUTABLE: flags.get(AttributeKey.IMMUTABLE),
        }
        if not hasattr(os, "chflags"):
            if any(wanted.values()):
                raise OSError(errno.ENOTSUP, os.strerror(errno.ENOTSUP), str(path))
            return
        current = os.lstat(path).st_flags
        updated = current
        for bit, value in wanted.items():
            if value is None:
                continue
            updated = updated | bit if value else updated & ~bit
        if updated != current:
            os.chflags(path, updated, follow_symlinks=False)
