from __future__ import annotations

import getpass
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

_SCP_LIKE = re.compile(r"^(?P<user>[^@/:]+)@(?P<host>[^:/]+):(?P<root>.*)$")


@dataclass(frozen=True)
class EndpointSpec:
    kind: str
    root: str
    user: str | None = None
    host: str | None = None
    port: int | None = None

    @property
    def is_local(self) -> bool:
        return self.kind == "local"

    @property
    def is_remote(self) -> bool:
        return self.kind == "remote"


def parse_endpoint(text: str) -> EndpointSpec:
    """Parse a local path, `local:/path`, `ssh://user@host[:port]/path` or `user@host:path`."""
    value = text.strip()
    if not value:
        raise ValueError("empty endpoint")

    if value.startswith("local:"):
        root = value[len("local:") :]
        if not root:
            raise ValueError(f"missing local path in {text!r}")
        return EndpointSpec(kind="local", root=root)

    if value.startswith("ssh://"):
        parts = urlsplit(value)
        if not parts.hostname:
            raise ValueError(f"missing host in {text!r}")
        root = parts.path or "~"
        if root.startswith("/~"):
            root = root[1:]
        return EndpointSpec(
            kind="remote",
            root=root,
            user=parts.username or getpass.getuser(),
            host=parts.hostname,
            port=parts.port,
        )

    match = _SCP_LIKE.match(value)
    if match:
        return EndpointSpec(
            kind="remote",
            root=match.group("root") or "~",
            user=match.group("user"),
            host=match.group("host"),
        )

    return EndpointSpec(kind="local", root=value)


def endpoint_to_string(endpoint: EndpointSpec) -> str:
    if endpoint.is_local:
        return endpoint.root
    port = f":{endpoint.port}" if endpoint.port else ""
    return f"ssh://{endpoint.user}@{endpoint.host}{port}/{endpoint.root.lstrip('/')}"
