"""Shared test fixtures."""

import logging

import pytest

from dirtylabel.models import PullRequest, PullRequestPage, ReconcileContext
from dirtylabel.providers.base import RepositoryHost


def make_pr(number: int, mergeable: str, labels: list[str] | None = None, title: str | None = None) -> PullRequest:
    return PullRequest(
        number=number,
        title=title or f"PR {number}",
        permalink=f"https://github.com/octo/widgets/pull/{number}",
        updated_at="2024-01-02T00:00:00Z",
        labels=labels or [],
        mergeable=mergeable,
    )


class RecordingHost(RepositoryHost):
    """In-memory host: serves queued pages and records every call."""

    def __init__(self, pages: list[PullRequestPage] | None = None) -> None:
        self.pages = list(pages or [])
        self.queries: list[tuple[str | None, str | None]] = []
        self.calls: list[tuple] = []
        self.failures: dict[tuple, Exception] = {}

    def query_open_pull_requests(self, after: str | None, base_branch: str | None) -> PullRequestPage:
        self.queries.append((after, base_branch))
        if not self.pages:
            return PullRequestPage()
        return self.pages.pop(0)

    def _record(self, call: tuple) -> None:
        self.calls.append(call)
        if call in self.failures:
            raise self.failures[call]

    def add_label(self, number: int, label: str) -> None:
        self._record(("add_label", number, label))

    def remove_label(self, number: int, label: str) -> None:
        self._record(("remove_label", number, label))

    def create_comment(self, number: int, body: str) -> None:
        self._record(("create_comment", number, body))

    @property
    def comments(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "create_comment"]


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()


@pytest.fixture
def context() -> ReconcileContext:
    return ReconcileContext(dirty_label="dirty", retry_after=30, retry_max=5)


@pytest.fixture(autouse=True)
def reset_dirtylabel_logger():
    """configure_logging() detaches the namespace from root; reattach so caplog sees records."""
    yield
    logger = logging.getLogger("dirtylabel")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
