"""Tests for dirtylabel.models."""

import pytest
from conftest import make_pr
from pydantic import ValidationError

from dirtylabel.models import PullRequestPage, ReconcileContext


def test_pull_request_frozen() -> None:
    pr = make_pr(1, "MERGEABLE")
    with pytest.raises(Exception):  # ValidationError or TypeError depending on pydantic version
        pr.title = "changed"  # type: ignore[misc]


def test_pull_request_accepts_any_mergeable_value() -> None:
    assert make_pr(1, "NOT_A_STATE").mergeable == "NOT_A_STATE"


def test_page_defaults() -> None:
    page = PullRequestPage()
    assert page.pull_requests == []
    assert page.end_cursor is None
    assert page.has_next_page is False


def test_context_defaults() -> None:
    ctx = ReconcileContext(dirty_label="dirty")
    assert ctx.after is None
    assert ctx.base_branch is None
    assert ctx.remove_on_dirty_label == ""
    assert ctx.comment_on_dirty == ""
    assert ctx.comment_on_clean == ""
    assert ctx.retry_after == 120
    assert ctx.retry_max == 5
    assert ctx.continue_on_missing_permissions is False


def test_context_frozen_and_copied(context: ReconcileContext) -> None:
    with pytest.raises(Exception):
        context.retry_max = 0  # type: ignore[misc]
    nxt = context.model_copy(update={"retry_max": context.retry_max - 1, "after": "c1"})
    assert (nxt.retry_max, nxt.after) == (4, "c1")
    assert (context.retry_max, context.after) == (5, None)


@pytest.mark.parametrize("field", ["retry_after", "retry_max"])
def test_context_rejects_negative_retry_settings(field: str) -> None:
    with pytest.raises(ValidationError):
        ReconcileContext(dirty_label="dirty", **{field: -1})
