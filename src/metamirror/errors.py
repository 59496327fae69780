from __future__ import annotations

import os
from enum import Enum
from pathlib import PurePosixPath


class ErrorKind(str, Enum):
    UNSUPPORTED_FILE_TYPE = "unsupported_file_type"
    TYPE_CONFLICT = "type_conflict"
    DIRECTORY_CREATION = "directory_creation"
    FILE_CREATION = "file_creation"
    LINK_COPY = "link_copy"
    EXTENDED_ATTRIBUTES_COPY = "extended_attributes_copy"
    FLAGS_COPY = "flags_copy"
    ENTRY_READ = "entry_read"


def describe_cause(error: BaseException) -> str:
    """Return the platform message of `error` without errno decoration."""
    if isinstance(error, AttributeIOError):
        return str(error)
    if isinstance(error, OSError) and error.strerror:
        return error.strerror
    return str(error)


class MetamirrorError(Exception):
    """Base error for the project."""


class ValidationError(MetamirrorError):
    pass


class TraversalError(MetamirrorError):
    def __init__(self, relpath: PurePosixPath, cause: BaseException) -> None:
        self.relpath = relpath
        self.cause = cause
        super().__init__(
            f'Enumeration failed at "{relpath.as_posix()}":  {describe_cause(cause)}'
        )


class AttributeIOError(OSError):
    """Extended-attribute call failure carrying the platform errno and message."""

    def __init__(
        self,
        errno_code: int,
        message: str | None = None,
        *,
        path: str | os.PathLike[str] | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(errno_code, message or os.strerror(errno_code))
        self.path = None if path is None else os.fspath(path)
        self.name = name

    def __str__(self) -> str:
        if self.name:
            return f"{self.strerror} ({self.name})"
        return str(self.strerror)


class MirrorError(MetamirrorError):
    kind: ErrorKind
    description: str = ""

    def __init__(
        self, relpath: PurePosixPath, cause: BaseException | None = None
    ) -> None:
        self.relpath = relpath
        self.cause = cause
        super().__init__(self._message())

    def _message(self) -> str:
        message = f'{self.description} "{self.relpath.as_posix()}"'
        if self.cause is not None:
            message += f":  {describe_cause(self.cause)}"
        return message


class UnsupportedFileTypeError(MirrorError):
    kind = ErrorKind.UNSUPPORTED_FILE_TYPE
    description = "Unsupported file type of"


class TypeConflictError(MirrorError):
    kind = ErrorKind.TYPE_CONFLICT

    def _message(self) -> str:
        return f'File "{self.relpath.as_posix()}" already exists but with different type'


class DirectoryCreationError(MirrorError):
    kind = ErrorKind.DIRECTORY_CREATION
    description = "Couldn't create directory"


class FileCreationError(MirrorError):
    kind = ErrorKind.FILE_CREATION
    description = "Couldn't create file"


class LinkCopyError(MirrorError):
    kind = ErrorKind.LINK_COPY
    description = "Couldn't copy symlink or alias to"


class ExtendedAttributesCopyError(MirrorError):
    kind = ErrorKind.EXTENDED_ATTRIBUTES_COPY
    description = "Couldn't copy extended attributes to"


class FlagsCopyError(MirrorError):
    kind = ErrorKind.FLAGS_COPY
    description = "Couldn't copy flags to"


class EntryReadError(MirrorError):
    kind = ErrorKind.ENTRY_READ
    description = "Couldn't read attributes of"
