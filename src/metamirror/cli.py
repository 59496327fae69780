from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path, PurePosixPath

import paramiko
import typer
from rich.console import Console
from rich.markup import escape

from .config import MirrorSettings, load_settings
from .endpoints import EndpointSpec, endpoint_to_string, parse_endpoint
from .errors import ValidationError
from .models import EntryResult, RunOutcome, RunStatus
from .orchestrator import mirror_single_entry, mirror_tree
from .remote_fs import RemoteFileSystem, sftp_session
from .text_utils import display_text

app = typer.Typer(
    help="Mirror a tree's structure and metadata using empty placeholder files",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_USAGE = 2


def _print_path(relpath: PurePosixPath) -> None:
    console.print(
        display_text(relpath.as_posix()), markup=False, highlight=False, soft_wrap=True
    )


def _print_skip(result: EntryResult) -> None:
    err_console.print(
        f"Skipping file:  {display_text(str(result.error))}",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def _fail(message: str, code: int = EXIT_FAILURE) -> typer.Exit:
    err_console.print(
        f"[red]Error:[/red] {escape(display_text(message))}",
        highlight=False,
        soft_wrap=True,
    )
    return typer.Exit(code)


def _resolve_settings(
    config: Path | None,
    *,
    skip_errors: bool,
    verbose: bool,
    dates: bool | None,
    permissions: bool | None,
    xattrs: bool | None,
    flags: bool | None,
    type_codes: bool | None,
) -> MirrorSettings:
    try:
        return load_settings(
            config,
            # Unset short flags fall back to the config file.
            skip_errors=skip_errors or None,
            verbose=verbose or None,
            dates=dates,
            permissions=permissions,
            extended_attributes=xattrs,
            flags=flags,
            hfs_codes=type_codes,
        )
    except ValidationError as exc:
        raise _fail(str(exc), EXIT_USAGE)


def _finish(outcome: RunOutcome) -> None:
    if outcome.status == RunStatus.ABORTED and outcome.fatal_error is not None:
        raise _fail(str(outcome.fatal_error))


@app.command()
def tree(
    source: Path = typer.Argument(..., help="The path to the input directory."),
    destination: str = typer.Argument(
        ...,
        help="The output directory: a local path, local:/path, ssh://user@host[:port]/path or user@host:path.",
    ),
    skip_errors: bool = typer.Option(
        False, "--skip-errors", "-i", help="Skip files when encountering errors instead of canceling."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Print relative paths of the files while they are copied."
    ),
    dates: bool | None = typer.Option(None, "--dates/--no-dates", help="Copy creation and modification dates."),
    permissions: bool | None = typer.Option(
        None, "--permissions/--no-permissions", help="Copy permission bits and ownership."
    ),
    xattrs: bool | None = typer.Option(None, "--xattrs/--no-xattrs", help="Copy extended attributes."),
    flags: bool | None = typer.Option(None, "--flags/--no-flags", help="Copy hidden and immutable flags."),
    type_codes: bool | None = typer.Option(
        None, "--type-codes/--no-type-codes", help="Copy HFS type and creator codes."
    ),
    config: Path | None = typer.Option(None, help="TOML settings file (default: ~/.config/metamirror/config.toml)"),
    ssh_compression: bool = typer.Option(
        False,
        "--ssh-compression/--no-ssh-compression",
        help="Enable SSH transport compression for remote destinations.",
    ),
) -> None:
    """Mirror the contents of SOURCE into the existing directory DESTINATION."""
    settings = _resolve_settings(
        config,
        skip_errors=skip_errors,
        verbose=verbose,
        dates=dates,
        permissions=permissions,
        xattrs=xattrs,
        flags=flags,
        type_codes=type_codes,
    )
    try:
        endpoint = parse_endpoint(destination)
    except ValueError as exc:
        raise _fail(f"Invalid destination: {exc}", EXIT_USAGE)

    source_root = source.expanduser().resolve()
    on_success = _print_path if settings.verbose else None

    try:
        if endpoint.is_local:
            outcome = mirror_tree(
                source_root,
                Path(endpoint.root).expanduser().resolve(),
                settings.config,
                settings.policy,
                on_success=on_success,
                on_skip=_print_skip,
            )
        else:
            outcome = _mirror_to_remote(
                source_root, endpoint, settings, ssh_compression, on_success
            )
    except ValidationError as exc:
        raise _fail(str(exc), EXIT_USAGE)

    _finish(outcome)


def _mirror_to_remote(
    source_root: Path,
    endpoint: EndpointSpec,
    settings: MirrorSettings,
    ssh_compression: bool,
    on_success: Callable[[PurePosixPath], None] | None,
) -> RunOutcome:
    try:
        with sftp_session(endpoint, compress=ssh_compression) as sftp:
            remote = RemoteFileSystem(sftp)
            return mirror_tree(
                source_root,
                remote.expand_root(endpoint.root),
                settings.config,
                settings.policy,
                destination=remote,
                on_success=on_success,
                on_skip=_print_skip,
            )
    except (paramiko.SSHException, OSError) as exc:
        raise _fail(f"Remote destination {endpoint_to_string(endpoint)} failed: {exc}")


@app.command()
def entry(
    source: Path = typer.Argument(..., help="The file, directory or link to mirror."),
    destination: Path = typer.Argument(..., help="The path of the mirror to create or update."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print the relative path once copied."),
    dates: bool | None = typer.Option(None, "--dates/--no-dates", help="Copy creation and modification dates."),
    permissions: bool | None = typer.Option(
        None, "--permissions/--no-permissions", help="Copy permission bits and ownership."
    ),
    xattrs: bool | None = typer.Option(None, "--xattrs/--no-xattrs", help="Copy extended attributes."),
    flags: bool | None = typer.Option(None, "--flags/--no-flags", help="Copy hidden and immutable flags."),
    type_codes: bool | None = typer.Option(
        None, "--type-codes/--no-type-codes", help="Copy HFS type and creator codes."
    ),
    config: Path | None = typer.Option(None, help="TOML settings file (default: ~/.config/metamirror/config.toml)"),
) -> None:
    """Mirror the single entry SOURCE as DESTINATION."""
    settings = _resolve_settings(
        config,
        skip_errors=False,
        verbose=verbose,
        dates=dates,
        permissions=permissions,
        xattrs=xattrs,
        flags=flags,
        type_codes=type_codes,
    )
    # abspath, not resolve: a symlink argument is mirrored as a link.
    source_path = Path(os.path.abspath(source.expanduser()))
    destination_path = Path(os.path.abspath(destination.expanduser()))
    try:
        result = mirror_single_entry(source_path, destination_path, settings.config)
    except ValidationError as exc:
        raise _fail(str(exc), EXIT_USAGE)

    if not result.ok:
        raise _fail(str(result.error))
    if settings.verbose:
        _print_path(result.relpath)


if __name__ == "__main__":
    app()
