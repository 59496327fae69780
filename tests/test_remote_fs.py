from __future__ import annotations

import errno
import os
from pathlib import Path, PurePosixPath

import pytest

from metamirror.attributes import AttributeKey
from metamirror.config import ErrorPolicy, MirrorConfig
from metamirror.endpoints import parse_endpoint
from metamirror.errors import AttributeIOError, TypeConflictError
from metamirror.local_fs import LocalFileSystem
from metamirror.mirror_builder import NodeMirrorBuilder
from metamirror.models import NodeType, RunStatus
from metamirror.orchestrator import mirror_tree
from metamirror.remote_fs import RemoteFileSystem, sftp_session

from conftest import (
    FIXED_MTIME_NS,
    DummyAutoAddPolicy,
    FakeSFTPClient,
    FakeSSHClient,
    RemoteStat,
    build_source_tree,
    mk_snapshot,
)


def test_sftp_session_connects_and_closes() -> None:
    sftp = FakeSFTPClient()
    client = FakeSSHClient(sftp)

    with sftp_session(
        parse_endpoint("ssh://alice@nas:2222/srv"),
        compress=True,
        client_factory=lambda: client,
        auto_add_policy_factory=DummyAutoAddPolicy,
    ) as opened:
        assert opened is sftp

    assert client.connect_calls == [
        {
            "hostname": "nas",
            "username": "alice",
            "port": 2222,
            "look_for_keys": True,
            "allow_agent": True,
            "timeout": 10,
            "compress": True,
        }
    ]
    assert sftp.closed and client.closed


def test_sftp_session_closes_client_on_error() -> None:
    sftp = FakeSFTPClient()
    client = FakeSSHClient(sftp)

    with pytest.raises(OSError):
        with sftp_session(
            parse_endpoint("alice@nas:srv"),
            client_factory=lambda: client,
            auto_add_policy_factory=DummyAutoAddPolicy,
        ):
            raise OSError("connection dropped")

    assert client.connect_calls[0]["port"] == 22
    assert sftp.closed and client.closed


def test_expand_root() -> None:
    remote = RemoteFileSystem(FakeSFTPClient(home="/home/alice"))

    assert remote.expand_root("~") == PurePosixPath("/home/alice")
    assert remote.expand_root("~/m") == PurePosixPath("/home/alice/m")
    assert remote.expand_root("m/n") == PurePosixPath("/home/alice/m/n")
    assert remote.expand_root("/srv/m") == PurePosixPath("/srv/m")


def test_node_type() -> None:
    sftp = FakeSFTPClient()
    sftp.remote_stats["/home/user/l"] = RemoteStat(st_mode=0o120777)
    sftp.remote_stats["/home/user/f"] = RemoteStat(st_mode=0o100644)
    remote = RemoteFileSystem(sftp)

    assert remote.node_type(PurePosixPath("/home/user")) == NodeType.DIR
    assert remote.node_type(PurePosixPath("/home/user/l")) == NodeType.SYMLINK
    assert remote.node_type(PurePosixPath("/home/user/f")) == NodeType.FILE
    assert remote.node_type(PurePosixPath("/home/user/missing")) is None


def test_create_empty_file_applies_attributes() -> None:
    sftp = FakeSFTPClient()
    remote = RemoteFileSystem(sftp)
    path = PurePosixPath("/home/user/f")

    remote.create_empty_file(
        path,
        {
            AttributeKey.MODE: 0o600,
            AttributeKey.OWNER_ID: 501,
            AttributeKey.OWNER_NAME: "alice",
            AttributeKey.MODIFICATION_TIME: FIXED_MTIME_NS,
        },
    )

    st = sftp.remote_stats["/home/user/f"]
    assert sftp.remote_files["/home/user/f"] == b""
    assert st.st_mode & 0o7777 == 0o600
    assert (st.st_uid, st.st_gid) == (501, 1000)
    assert st.st_mtime == FIXED_MTIME_NS // 1_000_000_000
    assert ("open", "/home/user/f", "wx") in sftp.calls


def test_create_empty_file_refuses_existing() -> None:
    sftp = FakeSFTPClient()
    sftp.remote_stats["/home/user/f"] = RemoteStat(st_mode=0o100644)

    with pytest.raises(OSError):
        RemoteFileSystem(sftp).create_empty_file(PurePosixPath("/home/user/f"), {})


def test_empty_attributes_issue_no_calls() -> None:
    sftp = FakeSFTPClient()
    sftp.remote_stats["/home/user/f"] = RemoteStat(st_mode=0o100644)

    RemoteFileSystem(sftp).set_attributes(PurePosixPath("/home/user/f"), {})

    assert sftp.calls == []


def test_flags_and_xattrs_are_unsupported() -> None:
    remote = RemoteFileSystem(FakeSFTPClient())
    path = PurePosixPath("/home/user/f")

    remote.set_flags(path, {AttributeKey.HIDDEN: False, AttributeKey.IMMUTABLE: False})
    with pytest.raises(OSError) as flag_error:
        remote.set_flags(path, {AttributeKey.HIDDEN: True})
    with pytest.raises(AttributeIOError) as xattr_error:
        remote.set_xattr(path, "user.tag", b"x")

    assert flag_error.value.errno == errno.ENOTSUP
    assert xattr_error.value.errno == errno.ENOTSUP
    assert xattr_error.value.name == "user.tag"


def test_tree_is_mirrored_over_sftp(tmp_path: Path) -> None:
    src = build_source_tree(tmp_path / "src")
    sftp = FakeSFTPClient()
    remote = RemoteFileSystem(sftp)

    outcome = mirror_tree(src, remote.expand_root("~"), destination=remote)

    assert outcome.status == RunStatus.COMPLETED
    assert sftp.remote_stats["/home/user/a"].st_mode & 0o170000 == 0o040000
    assert sftp.remote_files["/home/user/a/f.txt"] == b""
    placeholder = sftp.remote_stats["/home/user/a/f.txt"]
    assert placeholder.st_mode & 0o7777 == 0o640
    assert placeholder.st_uid == os.getuid()
    assert placeholder.st_mtime == FIXED_MTIME_NS // 1_000_000_000
    assert sftp.remote_links == {"/home/user/a/link": "f.txt"}


def test_second_sftp_run_creates_nothing_new(tmp_path: Path) -> None:
    src = build_source_tree(tmp_path / "src")
    sftp = FakeSFTPClient()
    remote = RemoteFileSystem(sftp)
    root = remote.expand_root("~")
    mirror_tree(src, root, destination=remote)
    sftp.calls.clear()

    outcome = mirror_tree(src, root, destination=remote)

    assert outcome.status == RunStatus.COMPLETED
    created = [call for call in sftp.calls if call[0] in {"mkdir", "open", "symlink"}]
    assert created == []


def test_remote_type_conflict(tmp_path: Path) -> None:
    src = build_source_tree(tmp_path / "src")
    sftp = FakeSFTPClient()
    sftp.remote_stats["/home/user/a"] = RemoteStat(st_mode=0o100644)
    remote = RemoteFileSystem(sftp)

    outcome = mirror_tree(
        src, remote.expand_root("~"), policy=ErrorPolicy.ABORT, destination=remote
    )

    assert outcome.status == RunStatus.ABORTED
    assert isinstance(outcome.fatal_error, TypeConflictError)
    assert outcome.fatal_error.relpath == PurePosixPath("a")


def test_sftp_session_rejects_local_endpoint() -> None:
    client = FakeSSHClient(FakeSFTPClient())

    with pytest.raises(ValueError):
        with sftp_session(
            parse_endpoint("/srv/mirror"),
            client_factory=lambda: client,
            auto_add_policy_factory=DummyAutoAddPolicy,
        ):
            pass

    assert client.connect_calls == []


def test_alias_is_stored_as_file_and_reconciled_on_rerun(tmp_path: Path) -> None:
    (tmp_path / "al").write_bytes(b"bookmark")
    sftp = FakeSFTPClient()
    remote = RemoteFileSystem(sftp)
    builder = NodeMirrorBuilder(
        MirrorConfig(copy_extended_attributes=False), LocalFileSystem(), remote
    )
    snapshot = mk_snapshot(NodeType.ALIAS, mode=0o600)
    destination = PurePosixPath("/home/user/al")

    for _ in range(2):
        builder.mirror(PurePosixPath("al"), snapshot, tmp_path / "al", destination)

    assert remote.node_type(destination) == NodeType.FILE
    assert sftp.remote_files["/home/user/al"] == b"bookmark"
    assert sftp.remote_stats["/home/user/al"].st_mode & 0o7777 == 0o600
