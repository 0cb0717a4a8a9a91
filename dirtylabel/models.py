"""Shared pydantic models: the contract between the host provider and the reconcile loop."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Action(Enum):
    MARK_DIRTY = "mark_dirty"
    MARK_CLEAN = "mark_clean"
    RETRY = "retry"


class LabelChange(Enum):
    NO_CHANGE = "no_change"
    ADDED = "added"
    REMOVED = "removed"


class PullRequest(BaseModel):
    """One open pull request as observed at fetch time."""

    model_config = ConfigDict(frozen=True)

    number: int
    title: str
    permalink: str
    updated_at: str
    labels: list[str] = []  # not re-fetched after mutation
    mergeable: str  # CONFLICTING | MERGEABLE | UNKNOWN, validated by classify()


class PullRequestPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    pull_requests: list[PullRequest] = []
    end_cursor: str | None = None
    has_next_page: bool = False


class ReconcileContext(BaseModel):
    """State carried through check_dirty. Derive copies, never mutate."""

    model_config = ConfigDict(frozen=True)

    after: str | None = None  # None = first page
    base_branch: str | None = None
    dirty_label: str
    remove_on_dirty_label: str = ""
    comment_on_dirty: str = ""
    comment_on_clean: str = ""
    retry_after: float = Field(120, ge=0)  # seconds
    retry_max: int = Field(5, ge=0)
    continue_on_missing_permissions: bool = False
