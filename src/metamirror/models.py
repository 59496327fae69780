from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .errors import MetamirrorError, MirrorError


class NodeType(str, Enum):
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    ALIAS = "alias"
    UNSUPPORTED = "unsupported"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    ABORTED = "aborted"


@dataclass(frozen=True)
class MetadataSnapshot:
    node_type: NodeType
    may_have_extended_attributes: bool = False
    creation_time_ns: int | None = None
    modification_time_ns: int | None = None
    mode: int | None = None
    owner_id: int | None = None
    owner_name: str | None = None
    group_id: int | None = None
    group_name: str | None = None
    hidden: bool | None = None
    immutable: bool | None = None
    hfs_creator_code: bytes | None = None
    hfs_type_code: bytes | None = None
    finder_flags: int | None = None
    link_target: str | None = None


@dataclass(frozen=True)
class RelativeEntry:
    relpath: PurePosixPath
    snapshot: MetadataSnapshot


@dataclass(frozen=True)
class EntryResult:
    relpath: PurePosixPath
    error: MirrorError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunOutcome:
    results: list[EntryResult] = field(default_factory=list)
    status: RunStatus = RunStatus.COMPLETED
    fatal_error: MetamirrorError | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.ok)

    def raise_for_status(self) -> None:
        if self.fatal_error is not None:
            raise self.fatal_error
