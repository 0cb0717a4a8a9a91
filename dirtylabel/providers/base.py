"""Abstract base class for repository hosts."""

from abc import ABC, abstractmethod

from dirtylabel.models import PullRequestPage


class HostError(RuntimeError):
    """Any failure talking to the repository host."""


class NotAccessibleError(HostError):
    """The integration lacks permission for the requested mutation."""


class LabelNotFoundError(HostError):
    """The label to remove is not on the pull request."""


class RepositoryHost(ABC):
    @abstractmethod
    def query_open_pull_requests(self, after: str | None, base_branch: str | None) -> PullRequestPage: ...

    @abstractmethod
    def add_label(self, number: int, label: str) -> None: ...

    @abstractmethod
    def remove_label(self, number: int, label: str) -> None: ...

    @abstractmethod
    def create_comment(self, number: int, body: str) -> None: ...
