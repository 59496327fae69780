from __future__ import annotations

import errno
import os
import stat
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import PurePosixPath
from typing import Any

import paramiko

from .attributes import AttributeKey
from .config import DEFAULT_REMOTE_PORT, DEFAULT_SSH_TIMEOUT
from .endpoints import EndpointSpec
from .errors import AttributeIOError
from .models import NodeType


def _node_type(st_mode: int) -> NodeType:
    if stat.S_ISDIR(st_mode):
        return NodeType.DIR
    if stat.S_ISLNK(st_mode):
        return NodeType.SYMLINK
    if stat.S_ISREG(st_mode):
        return NodeType.FILE
    return NodeType.UNSUPPORTED


@contextmanager
def sftp_session(
    endpoint: EndpointSpec,
    *,
    compress: bool = False,
    timeout: int = DEFAULT_SSH_TIMEOUT,
    client_factory: Callable[[], Any] = paramiko.SSHClient,
    auto_add_policy_factory: Callable[[], Any] = paramiko.AutoAddPolicy,
) -> Iterator[Any]:
    if not endpoint.is_remote:
        raise ValueError(f"not a remote endpoint: {endpoint.root}")
    client = client_factory()
    try:
        client.load_system_host_keys()
        client.set_missing_host_key_policy(auto_add_policy_factory())
        client.connect(
            hostname=str(endpoint.host),
            username=str(endpoint.user),
            port=endpoint.port or DEFAULT_REMOTE_PORT,
            look_for_keys=True,
            allow_agent=True,
            timeout=timeout,
            compress=compress,
        )
        sftp = client.open_sftp()
        try:
            yield sftp
        finally:
            sftp.close()
    finally:
        client.close()


class RemoteFileSystem:
    """Mirror destination on an SFTP server.

    SFTP has no extended attributes or file flags, and ownership is set by
    numeric id only. Aliases are stored as regular files holding the alias
    data.
    """

    supports_aliases = False

    def __init__(self, sftp: paramiko.SFTPClient) -> None:
        self.sftp = sftp

    def expand_root(self, root: str) -> PurePosixPath:
        if root == "~" or root.startswith("~/"):
            home = self.sftp.normalize(".")
            return PurePosixPath(home + root[1:])
        if not root.startswith("/"):
            return PurePosixPath(self.sftp.normalize(".")) / root
        return PurePosixPath(root)

    def node_type(self, path: PurePosixPath) -> NodeType | None:
        try:
            st = self.sftp.lstat(path.as_posix())
        except FileNotFoundError:
            return None
        return _node_type(st.st_mode or 0)

    def make_directory(
        self, path: PurePosixPath, attributes: Mapping[AttributeKey, Any]
    ) -> None:
        self.sftp.mkdir(path.as_posix())
        self.set_attributes(path, attributes)

    def create_empty_file(
        self, path: PurePosixPath, attributes: Mapping[AttributeKey, Any]
    ) -> None:
        with self.sftp.open(path.as_posix(), "wx"):
            pass
        self.set_attributes(path, attributes)

    def make_symlink(self, target: str, path: PurePosixPath) -> None:
        self.sftp.symlink(target, path.as_posix())

    def write_new_file(self, path: PurePosixPath, data: bytes) -> None:
        with self.sftp.open(path.as_posix(), "wx") as handle:
            handle.write(data)

    def set_attributes(
        self, path: PurePosixPath, attributes: Mapping[AttributeKey, Any]
    ) -> None:
        if not attributes:
            return
        remote_path = path.as_posix()
        if AttributeKey.OWNER_ID in attributes or AttributeKey.GROUP_ID in attributes:
            current = self.sftp.lstat(remote_path)
            self.sftp.chown(
                remote_path,
                int(attributes.get(AttributeKey.OWNER_ID, current.st_uid)),
                int(attributes.get(AttributeKey.GROUP_ID, current.st_gid)),
            )
        if AttributeKey.MODE in attributes:
            self.sftp.chmod(remote_path, int(attributes[AttributeKey.MODE]))
        mtime_ns = attributes.get(AttributeKey.MODIFICATION_TIME)
        if mtime_ns is not None:
            current = self.sftp.stat(remote_path)
            self.sftp.utime(
                remote_path,
                (int(current.st_atime or 0), int(mtime_ns // 1_000_000_000)),
            )

    def set_flags(self, path: PurePosixPath, flags: Mapping[AttributeKey, Any]) -> None:
        if any(flags.values()):
            raise OSError(
                errno.ENOTSUP, os.strerror(errno.ENOTSUP), path.as_posix()
            )

    def set_xattr(self, path: PurePosixPath, name: str, value: bytes) -> None:
        raise AttributeIOError(errno.ENOTSUP, path=path.as_posix(), name=name)

    def set_finder_flags(self, path: PurePosixPath, flags: int) -> None:
        raise AttributeIOError(errno.ENOTSUP, path=path.as_posix())
