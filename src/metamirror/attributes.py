from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from .config import MirrorConfig
from .models import MetadataSnapshot


class AttributeKey(str, Enum):
    CREATION_TIME = "creation_time_ns"
    MODIFICATION_TIME = "modification_time_ns"
    MODE = "mode"
    OWNER_ID = "owner_id"
    OWNER_NAME = "owner_name"
    GROUP_ID = "group_id"
    GROUP_NAME = "group_name"
    HFS_CREATOR_CODE = "hfs_creator_code"
    HFS_TYPE_CODE = "hfs_type_code"
    HIDDEN = "hidden"
    IMMUTABLE = "immutable"


DATE_KEYS = frozenset({AttributeKey.CREATION_TIME, AttributeKey.MODIFICATION_TIME})
PERMISSION_KEYS = frozenset(
    {
        AttributeKey.MODE,
        AttributeKey.OWNER_ID,
        AttributeKey.OWNER_NAME,
        AttributeKey.GROUP_ID,
        AttributeKey.GROUP_NAME,
    }
)
HFS_CODE_KEYS = frozenset({AttributeKey.HFS_CREATOR_CODE, AttributeKey.HFS_TYPE_CODE})
FLAG_KEYS = frozenset({AttributeKey.HIDDEN, AttributeKey.IMMUTABLE})

_EMPTY: Mapping[AttributeKey, Any] = MappingProxyType({})


@dataclass(frozen=True)
class AttributeSelection:
    """Keys to copy, split by the metadata store they are written through.

    `file_attributes` go through the regular attribute calls (times, mode,
    ownership, finder info); `resource_properties` are the BSD file flags.
    """

    file_attributes: frozenset[AttributeKey] = frozenset()
    resource_properties: frozenset[AttributeKey] = frozenset()


@dataclass(frozen=True)
class AttributePayload:
    file_attributes: Mapping[AttributeKey, Any] = field(default_factory=lambda: _EMPTY)
    resource_properties: Mapping[AttributeKey, Any] = field(
        default_factory=lambda: _EMPTY
    )

    def __bool__(self) -> bool:
        return bool(self.file_attributes) or bool(self.resource_properties)


def select_attributes(config: MirrorConfig) -> AttributeSelection:
    file_attributes: set[AttributeKey] = set()
    if config.copy_dates:
        file_attributes |= DATE_KEYS
    if config.copy_permissions:
        file_attributes |= PERMISSION_KEYS
    if config.copy_hfs_codes:
        file_attributes |= HFS_CODE_KEYS
    resource_properties = FLAG_KEYS if config.copy_flags else frozenset()
    return AttributeSelection(
        file_attributes=frozenset(file_attributes),
        resource_properties=frozenset(resource_properties),
    )


def _pick(
    keys: frozenset[AttributeKey], snapshot: MetadataSnapshot
) -> Mapping[AttributeKey, Any]:
    picked = {}
    for key in sorted(keys, key=lambda item: item.value):
        value = getattr(snapshot, key.value)
        if value is not None:
            picked[key] = value
    return MappingProxyType(picked)


def build_payload(
    selection: AttributeSelection, snapshot: MetadataSnapshot
) -> AttributePayload:
    return AttributePayload(
        file_attributes=_pick(selection.file_attributes, snapshot),
        resource_properties=_pick(selection.resource_properties, snapshot),
    )
