from __future__ import annotations

import errno
import os
import posixpath
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath

import pytest

from metamirror.local_fs import LocalFileSystem
from metamirror.models import MetadataSnapshot, NodeType, RelativeEntry
from metamirror.xattrs import XATTR_SUPPORTED

# 2023-11-14 22:13:20 UTC
FIXED_MTIME_NS = 1_700_000_000_000_000_000


def mk_snapshot(
    node_type: NodeType = NodeType.FILE,
    *,
    mode: int | None = 0o644,
    modification_time_ns: int | None = FIXED_MTIME_NS,
    **fields,
) -> MetadataSnapshot:
    return MetadataSnapshot(
        node_type=node_type,
        mode=mode,
        modification_time_ns=modification_time_ns,
        **fields,
    )


def mk_entry(relpath: str, node_type: NodeType = NodeType.FILE, **fields) -> RelativeEntry:
    return RelativeEntry(
        relpath=PurePosixPath(relpath), snapshot=mk_snapshot(node_type, **fields)
    )


def build_source_tree(root: Path) -> Path:
    """`a/`, `a/f.txt` (with content) and `a/link -> f.txt` under `root`."""
    (root / "a").mkdir(parents=True)
    placeholder = root / "a" / "f.txt"
    placeholder.write_text("payload that must not be copied", encoding="utf-8")
    os.chmod(placeholder, 0o640)
    os.utime(placeholder, ns=(FIXED_MTIME_NS, FIXED_MTIME_NS))
    os.symlink("f.txt", root / "a" / "link")
    return root


class FaultyFileSystem(LocalFileSystem):
    """LocalFileSystem that raises configured errors for (method, path) pairs."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def fail(self, method: str, path: Path, error: Exception) -> None:
        self.failures[(method, str(path))] = error

    def _check(self, method: str, path: Path) -> None:
        self.calls.append((method, str(path)))
        err = self.failures.get((method, str(path)))
        if err is not None:
            raise err

    def list_directory(self, path):
        self._check("list_directory", path)
        return super().list_directory(path)

    def read_snapshot(self, path):
        self._check("read_snapshot", path)
        return super().read_snapshot(path)

    def make_directory(self, path, attributes):
        self._check("make_directory", path)
        return super().make_directory(path, attributes)

    def create_empty_file(self, path, attributes):
        self._check("create_empty_file", path)
        return super().create_empty_file(path, attributes)

    def set_attributes(self, path, attributes):
        self._check("set_attributes", path)
        return super().set_attributes(path, attributes)

    def list_xattrs(self, path):
        self._check("list_xattrs", path)
        return super().list_xattrs(path)


class RecordingDestination(LocalFileSystem):
    """Local destination that records the attribute and flag payloads it receives."""

    def __init__(self) -> None:
        super().__init__()
        self.supports_aliases = True
        self.applied: list[tuple[str, str, object]] = []

    def make_directory(self, path, attributes):
        self.applied.append(("make_directory", str(path), dict(attributes)))
        os.mkdir(path)

    def create_empty_file(self, path, attributes):
        self.applied.append(("create_empty_file", str(path), dict(attributes)))
        Path(path).touch(exist_ok=False)

    def set_attributes(self, path, attributes):
        self.applied.append(("set_attributes", str(path), dict(attributes)))

    def set_flags(self, path, flags):
        self.applied.append(("set_flags", str(path), dict(flags)))

    def set_finder_flags(self, path, flags):
        self.applied.append(("set_finder_flags", str(path), flags))


@pytest.fixture
def xattr_tmp_path(tmp_path: Path) -> Path:
    if not XATTR_SUPPORTED:
        pytest.skip("no extended attribute support in this interpreter")
    marker = tmp_path / ".xattr-check"
    marker.touch()
    try:
        os.setxattr(marker, "user.metamirror.check", b"1")
    except OSError:
        pytest.skip("filesystem does not accept user extended attributes")
    finally:
        marker.unlink()
    return tmp_path


@dataclass
class RemoteStat:
    st_mode: int
    st_uid: int = 1000
    st_gid: int = 1000
    st_atime: float = 1.0
    st_mtime: float = 1.0


class _FakeRemoteFile:
    def __init__(self, sftp: FakeSFTPClient, path: str) -> None:
        self.sftp = sftp
        self.path = path

    def write(self, data: bytes) -> None:
        self.sftp.remote_files[self.path] += bytes(data)

    def __enter__(self) -> _FakeRemoteFile:
        return self

    def __exit__(self, *exc_info) -> None:
        return None


class FakeSFTPClient:
    def __init__(self, home: str = "/home/user") -> None:
        self.home = home
        self.remote_files: dict[str, bytes] = {}
        self.remote_links: dict[str, str] = {}
        self.remote_stats: dict[str, RemoteStat] = {
            "/": RemoteStat(st_mode=0o040755),
            home: RemoteStat(st_mode=0o040755),
        }
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple] = []
        self.closed = False

    def _check_failure(self, method: str, path: str) -> None:
        err = self.failures.get((method, path))
        if err is not None:
            raise err

    def _require_parent(self, path: str) -> None:
        parent = self.remote_stats.get(posixpath.dirname(path))
        if parent is None or (parent.st_mode & 0o170000) != 0o040000:
            raise FileNotFoundError(errno.ENOENT, "No such file", path)

    def _create(self, path: str, mode: int) -> None:
        self._require_parent(path)
        if path in self.remote_stats:
            raise OSError("Failure")
        self.remote_stats[path] = RemoteStat(st_mode=mode)

    def normalize(self, path: str) -> str:
        self.calls.append(("normalize", path))
        return self.home if path == "." else path

    def lstat(self, path: str) -> RemoteStat:
        self._check_failure("lstat", path)
        self.calls.append(("lstat", path))
        if path not in self.remote_stats:
            raise FileNotFoundError(errno.ENOENT, "No such file", path)
        return self.remote_stats[path]

    def stat(self, path: str) -> RemoteStat:
        self._check_failure("stat", path)
        self.calls.append(("stat", path))
        return self.lstat(path)

    def mkdir(self, path: str) -> None:
        self._check_failure("mkdir", path)
        self.calls.append(("mkdir", path))
        self._create(path, 0o040755)

    def open(self, path: str, mode: str = "r") -> _FakeRemoteFile:
        self._check_failure("open", path)
        self.calls.append(("open", path, mode))
        self._create(path, 0o100644)
        self.remote_files[path] = b""
        return _FakeRemoteFile(self, path)

    def symlink(self, target: str, path: str) -> None:
        self._check_failure("symlink", path)
        self.calls.append(("symlink", target, path))
        self._create(path, 0o120777)
        self.remote_links[path] = target

    def chmod(self, path: str, mode: int) -> None:
        self._check_failure("chmod", path)
        self.calls.append(("chmod", path, mode))
        entry = self.lstat(path)
        self.remote_stats[path] = replace(
            entry, st_mode=(entry.st_mode & 0o170000) | mode
        )

    def chown(self, path: str, uid: int, gid: int) -> None:
        self._check_failure("chown", path)
        self.calls.append(("chown", path, uid, gid))
        self.remote_stats[path] = replace(self.lstat(path), st_uid=uid, st_gid=gid)

    def utime(self, path: str, times: tuple[int, int]) -> None:
        self._check_failure("utime", path)
        self.calls.append(("utime", path, times))
        self.remote_stats[path] = replace(
            self.lstat(path), st_atime=float(times[0]), st_mtime=float(times[1])
        )

    def close(self) -> None:
        self.closed = True


class FakeSSHClient:
    def __init__(self, sftp: FakeSFTPClient) -> None:
        self.sftp = sftp
        self.connect_calls: list[dict[str, object]] = []
        self.closed = False

    def load_system_host_keys(self) -> None:
        return None

    def set_missing_host_key_policy(self, policy: object) -> None:
        _ = policy

    def connect(self, **kwargs) -> None:
        self.connect_calls.append(kwargs)

    def open_sftp(self) -> FakeSFTPClient:
        return self.sftp

    def close(self) -> None:
        self.closed = True


class DummyAutoAddPolicy:
    pass
