from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import ValidationError

DEFAULT_CONFIG_PATH = Path("~/.config/metamirror/config.toml")
CONFIG_TABLE = "metamirror"

# Finder info: type (4) + creator (4) + finder flags (2) + location/reserved.
FINDER_INFO_XATTR = "com.apple.FinderInfo"
FINDER_INFO_SIZE = 32
FINDER_FLAG_IS_ALIAS = 0x8000

DEFAULT_REMOTE_PORT = 22
DEFAULT_SSH_TIMEOUT = 10

_CONFIG_KEYS = {
    "dates": "copy_dates",
    "permissions": "copy_permissions",
    "extended_attributes": "copy_extended_attributes",
    "flags": "copy_flags",
    "hfs_codes": "copy_hfs_codes",
}
_RUN_KEYS = {"skip_errors", "verbose"}


class ErrorPolicy(str, Enum):
    ABORT = "abort"
    SKIP = "skip"


@dataclass(frozen=True)
class MirrorConfig:
    copy_dates: bool = True
    copy_permissions: bool = True
    copy_extended_attributes: bool = True
    copy_flags: bool = True
    copy_hfs_codes: bool = True


@dataclass(frozen=True)
class MirrorSettings:
    config: MirrorConfig = field(default_factory=MirrorConfig)
    policy: ErrorPolicy = ErrorPolicy.ABORT
    verbose: bool = False


def _read_table(path: Path) -> dict[str, object]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ValidationError(f'Couldn\'t read config file "{path}":  {exc}') from exc
    table = data.get(CONFIG_TABLE, {})
    if not isinstance(table, dict):
        raise ValidationError(f'"{CONFIG_TABLE}" in {path} must be a table')
    return table


def load_settings(
    path: Path | None = None,
    **overrides: bool | None,
) -> MirrorSettings:
    """Resolve settings from the config file, then apply non-None `overrides`.

    Without an explicit `path` the default location is read only if present.
    Override names match the `[metamirror]` keys.
    """
    if path is None:
        candidate = DEFAULT_CONFIG_PATH.expanduser()
        table = _read_table(candidate) if candidate.is_file() else {}
    else:
        resolved = path.expanduser()
        if not resolved.is_file():
            raise ValidationError(f'No such config file "{path}"')
        table = _read_table(resolved)

    values: dict[str, bool] = {}
    for key, value in table.items():
        if key not in _CONFIG_KEYS and key not in _RUN_KEYS:
            raise ValidationError(f"Unknown config key: {key}")
        if not isinstance(value, bool):
            raise ValidationError(f"Config key {key} must be true or false")
        values[key] = value
    for key, value in overrides.items():
        if key not in _CONFIG_KEYS and key not in _RUN_KEYS:
            raise TypeError(f"unknown setting: {key}")
        if value is not None:
            values[key] = value

    config = MirrorConfig(
        **{field_name: values[key] for key, field_name in _CONFIG_KEYS.items() if key in values}
    )
    policy = ErrorPolicy.SKIP if values.get("skip_errors", False) else ErrorPolicy.ABORT
    return MirrorSettings(
        config=config, policy=policy, verbose=values.get("verbose", False)
    )
