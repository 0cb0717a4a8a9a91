"""The reconcile loop: classify open PRs and converge their dirty label and comments."""

import logging
import time
from collections.abc import Callable

from dirtylabel.models import Action, LabelChange, PullRequest, ReconcileContext
from dirtylabel.providers.base import HostError, LabelNotFoundError, NotAccessibleError, RepositoryHost

logger = logging.getLogger(__name__)


class ProtocolError(RuntimeError):
    """The host returned something outside its contract."""


class ReconcileError(RuntimeError):
    def __init__(self, message: str, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label


_ACTIONS = {
    "CONFLICTING": Action.MARK_DIRTY,
    "MERGEABLE": Action.MARK_CLEAN,
    "UNKNOWN": Action.RETRY,
}


def classify(pr: PullRequest) -> Action:
    try:
        return _ACTIONS[pr.mergeable]
    except KeyError:
        raise ProtocolError(f"unhandled mergeable state '{pr.mergeable}'") from None


def _info(pr: PullRequest, message: str) -> None:
    logger.info('for PR "%s": %s', pr.title, message)


def _skip_missing_permissions(
    exc: NotAccessibleError, context: ReconcileContext, what: str, label: str | None = None
) -> None:
    if not context.continue_on_missing_permissions:
        raise ReconcileError(f"error {what}: {exc}", label=label) from exc
    logger.warning("%s skipped, missing permissions: %s", what, exc)


def ensure_label(host: RepositoryHost, pr: PullRequest, label: str, context: ReconcileContext) -> LabelChange:
    """Add label unless the snapshot already carries it."""
    if label in pr.labels:
        logger.info('#%d already has label "%s". Skipping.', pr.number, label)
        return LabelChange.NO_CHANGE
    try:
        host.add_label(pr.number, label)
    except NotAccessibleError as exc:
        _skip_missing_permissions(exc, context, f'adding "{label}"', label)
        return LabelChange.NO_CHANGE
    except HostError as exc:
        raise ReconcileError(f'error adding "{label}": {exc}', label=label) from exc
    return LabelChange.ADDED


def ensure_label_absent(
    host: RepositoryHost, pr: PullRequest, label: str, context: ReconcileContext
) -> LabelChange:
    """Remove label if the snapshot carries it. An empty label means removal is disabled."""
    if not label:
        return LabelChange.NO_CHANGE
    if label not in pr.labels:
        logger.debug('#%d has no label "%s", nothing to remove', pr.number, label)
        return LabelChange.NO_CHANGE
    try:
        host.remove_label(pr.number, label)
    except LabelNotFoundError:
        logger.info('On #%d label "%s" doesn\'t need to be removed since it doesn\'t exist.', pr.number, label)
        return LabelChange.NO_CHANGE
    except NotAccessibleError as exc:
        _skip_missing_permissions(exc, context, f'removing "{label}"', label)
        return LabelChange.NO_CHANGE
    except HostError as exc:
        raise ReconcileError(f'error removing "{label}": {exc}', label=label) from exc
    return LabelChange.REMOVED


def post_comment(host: RepositoryHost, pr: PullRequest, body: str, context: ReconcileContext) -> bool:
    """Post body verbatim. Returns True if a comment was created."""
    if not body:
        return False
    try:
        host.create_comment(pr.number, body)
    except NotAccessibleError as exc:
        _skip_missing_permissions(exc, context, f"commenting on #{pr.number}")
        return False
    return True


def reconcile_pull_request(host: RepositoryHost, pr: PullRequest, action: Action, context: ReconcileContext) -> bool:
    """Apply a MARK_DIRTY or MARK_CLEAN action and return the PR's dirty flag."""
    if action is Action.MARK_DIRTY:
        _info(pr, f'add "{context.dirty_label}", remove "{context.remove_on_dirty_label}"')
        added = ensure_label(host, pr, context.dirty_label, context)
        ensure_label_absent(host, pr, context.remove_on_dirty_label, context)
        if added is LabelChange.ADDED:
            post_comment(host, pr, context.comment_on_dirty, context)
        return True

    _info(pr, f'remove "{context.dirty_label}"')
    # remove_on_dirty_label is not re-added: a rebased PR needs a fresh review pass
    removed = ensure_label_absent(host, pr, context.dirty_label, context)
    if removed is LabelChange.REMOVED:
        post_comment(host, pr, context.comment_on_clean, context)
    return False


def check_dirty(
    host: RepositoryHost,
    context: ReconcileContext,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[int, bool]:
    """Walk every page of open PRs and return {number: is_dirty}.

    An UNKNOWN mergeable state stops the current page, waits retry_after seconds
    and re-fetches the same page with one retry fewer. PRs that are still
    unknown when the budget runs out are left out of the result.
    """
    statuses: dict[int, bool] = {}

    while True:
        if context.retry_max <= 0:
            logger.warning("reached maximum allowed retries")
            return statuses

        page = host.query_open_pull_requests(context.after, context.base_branch)
        if not page.pull_requests:
            return statuses

        retry = False
        for pr in page.pull_requests:
            action = classify(pr)
            if action is Action.RETRY:
                _info(pr, f"Retrying after {context.retry_after}s.")
                retry = True
                break
            statuses[pr.number] = reconcile_pull_request(host, pr, action, context)

        if retry:
            sleep(context.retry_after)
            context = context.model_copy(update={"retry_max": context.retry_max - 1})
            logger.info("retrying with %d retries remaining.", context.retry_max)
            continue

        if not page.has_next_page:
            return statuses
        context = context.model_copy(update={"after": page.end_cursor})
