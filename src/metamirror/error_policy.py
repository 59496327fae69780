from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import PurePosixPath

from .config import ErrorPolicy
from .models import EntryResult, RelativeEntry, RunOutcome, RunStatus
from .tree_walk import EntryReadFailure, TreeWalk


def _record_failure(
    outcome: RunOutcome,
    result: EntryResult,
    policy: ErrorPolicy,
    on_skip: Callable[[EntryResult], None] | None,
) -> bool:
    """Store a failed result; return False when the run must stop."""
    outcome.results.append(result)
    if policy == ErrorPolicy.ABORT:
        outcome.status = RunStatus.ABORTED
        outcome.fatal_error = result.error
        return False
    if on_skip is not None:
        on_skip(result)
    return True


def run_with_policy(
    walk: TreeWalk,
    mirror: Callable[[RelativeEntry], EntryResult],
    policy: ErrorPolicy = ErrorPolicy.ABORT,
    on_success: Callable[[PurePosixPath], None] | None = None,
    on_skip: Callable[[EntryResult], None] | None = None,
    finalize: Callable[[], Iterable[EntryResult]] | None = None,
) -> RunOutcome:
    """Mirror every walk item and collect the per-entry results.

    Under `ErrorPolicy.ABORT` the first failed entry ends the run; under
    `ErrorPolicy.SKIP` it is reported to `on_skip` and the walk goes on.
    A traversal failure always ends the run as aborted, after the entries
    that were already processed.

    `finalize` runs only once the walk is exhausted. Its failed results go
    through the same policy; successful ones are not recorded again.
    """
    outcome = RunOutcome()
    for item in walk:
        if isinstance(item, EntryReadFailure):
            result = EntryResult(relpath=item.relpath, error=item.error)
        else:
            result = mirror(item)

        if result.ok:
            outcome.results.append(result)
            if on_success is not None:
                on_success(result.relpath)
            continue
        if not _record_failure(outcome, result, policy, on_skip):
            return outcome

    if walk.traversal_error is not None:
        outcome.status = RunStatus.ABORTED
        outcome.fatal_error = walk.traversal_error
        return outcome

    if finalize is not None:
        for result in finalize():
            if not result.ok and not _record_failure(outcome, result, policy, on_skip):
                return outcome

    outcome.status = RunStatus.PARTIAL if outcome.failed else RunStatus.COMPLETED
    return outcome
