"""GitHub provider: GraphQL for the open-PR page, REST v3 for labels and comments."""

import logging
import subprocess
from urllib.parse import quote

import httpx

from dirtylabel.models import PullRequest, PullRequestPage
from dirtylabel.providers.base import HostError, LabelNotFoundError, NotAccessibleError, RepositoryHost
from dirtylabel.settings import DirtyLabelSettings

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

_NOT_ACCESSIBLE = "Resource not accessible by integration"

_OPEN_PULL_REQUESTS = """
query openPullRequests($owner: String!, $repo: String!, $first: Int!, $after: String, $baseRefName: String) {
  repository(owner: $owner, name: $repo) {
    pullRequests(first: $first, after: $after, states: OPEN, baseRefName: $baseRefName) {
      nodes {
        mergeable
        number
        permalink
        title
        updatedAt
        labels(first: 100) {
          nodes { name }
          pageInfo { endCursor hasNextPage }
        }
      }
      pageInfo {
        endCursor
        hasNextPage
      }
    }
  }
}
"""

_PULL_REQUEST_LABELS = """
query pullRequestLabels($owner: String!, $repo: String!, $number: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $number) {
      labels(first: 100, after: $after) {
        nodes { name }
        pageInfo { endCursor hasNextPage }
      }
    }
  }
}
"""


class GitHubProvider(RepositoryHost):
    def __init__(self, settings: DirtyLabelSettings) -> None:
        if not settings.repository or "/" not in settings.repository:
            raise RuntimeError(f"repository must be owner/repo, got {settings.repository!r}")
        self._owner, self._repo = settings.repository.split("/", 1)
        self._base_url = settings.api_url.rstrip("/")
        self._token = self._resolve_token(settings)
        self._headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _resolve_token(self, settings: DirtyLabelSettings) -> str:
        if settings.github_auth == "gh-cli":
            result = subprocess.run(
                ["gh", "auth", "token"],
                capture_output=True,
                text=True,
            )
            if result.returncode != 0:
                raise RuntimeError("gh auth token failed. Run: gh auth login")
            return result.stdout.strip()
        if settings.github_token:
            return settings.github_token.get_secret_value()
        raise RuntimeError("No GitHub credentials. Set DIRTYLABEL_GITHUB_TOKEN")

    def _request(self, method: str, path: str, body: dict | None = None) -> httpx.Response:
        try:
            response = httpx.request(
                method,
                f"{self._base_url}{path}",
                headers=self._headers,
                json=body,
                timeout=30,
            )
        except httpx.HTTPError as exc:
            raise HostError(f"{method} {path} failed: {exc}") from exc
        if response.status_code == 401:
            raise HostError("GitHub API returned 401. Check the token for the active profile.")
        return response

    @staticmethod
    def _message(response: httpx.Response) -> str:
        try:
            return str(response.json().get("message", ""))
        except (ValueError, AttributeError):
            return response.text

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        message = self._message(response)
        if response.status_code in (403, 404) and _NOT_ACCESSIBLE in message:
            raise NotAccessibleError(f"{action}: {message}")
        raise HostError(f"{action}: HTTP {response.status_code} {message}")

    def _gql(self, query: str, variables: dict) -> dict:
        response = self._request("POST", "/graphql", {"query": query, "variables": variables})
        self._raise_for_status(response, "graphql query")
        try:
            data = response.json()
        except ValueError as exc:
            raise HostError(f"GitHub GraphQL returned non-JSON body: {exc}") from exc
        if data.get("errors"):
            raise HostError(f"GitHub GraphQL error: {data['errors']}")
        if not data.get("data"):
            raise HostError("GitHub GraphQL response has no data")
        return data["data"]

    def _labels_from_node(self, node: dict) -> list[str]:
        """All label names of a PR node, following the labels cursor past the first 100."""
        connection = node.get("labels") or {}
        names = [label["name"] for label in connection.get("nodes") or []]
        page_info = connection.get("pageInfo") or {}
        while page_info.get("hasNextPage"):
            data = self._gql(
                _PULL_REQUEST_LABELS,
                {
                    "owner": self._owner,
                    "repo": self._repo,
                    "number": node["number"],
                    "after": page_info["endCursor"],
                },
            )
            connection = data["repository"]["pullRequest"]["labels"]
            names.extend(label["name"] for label in connection["nodes"])
            page_info = connection["pageInfo"]
        return names

    def _pull_request_from_node(self, node: dict) -> PullRequest:
        return PullRequest(
            number=node["number"],
            title=node["title"],
            permalink=node["permalink"],
            updated_at=node["updatedAt"],
            labels=self._labels_from_node(node),
            mergeable=node["mergeable"],
        )

    def query_open_pull_requests(self, after: str | None, base_branch: str | None) -> PullRequestPage:
        data = self._gql(
            _OPEN_PULL_REQUESTS,
            {
                "owner": self._owner,
                "repo": self._repo,
                "first": PAGE_SIZE,
                "after": after,
                "baseRefName": base_branch,
            },
        )
        logger.debug("open pull requests page: %s", data)
        try:
            connection = data["repository"]["pullRequests"]
            page_info = connection["pageInfo"]
            return PullRequestPage(
                pull_requests=[self._pull_request_from_node(n) for n in connection["nodes"]],
                end_cursor=page_info["endCursor"],
                has_next_page=page_info["hasNextPage"],
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise HostError(f"malformed pull request page: {exc!r}") from exc

    def add_label(self, number: int, label: str) -> None:
        # for labels PRs and issues are the same
        response = self._request(
            "POST",
            f"/repos/{self._owner}/{self._repo}/issues/{number}/labels",
            {"labels": [label]},
        )
        self._raise_for_status(response, f'adding "{label}" to #{number}')

    def remove_label(self, number: int, label: str) -> None:
        response = self._request(
            "DELETE",
            f"/repos/{self._owner}/{self._repo}/issues/{number}/labels/{quote(label, safe='')}",
        )
        if response.status_code == 404 and _NOT_ACCESSIBLE not in self._message(response):
            raise LabelNotFoundError(f'label "{label}" is not on #{number}')
        self._raise_for_status(response, f'removing "{label}" from #{number}')

    def create_comment(self, number: int, body: str) -> None:
        response = self._request(
            "POST",
            f"/repos/{self._owner}/{self._repo}/issues/{number}/comments",
            {"body": body},
        )
        self._raise_for_status(response, f"commenting on #{number}")
