import base64
import hashlib
import io
import zipfile
from collections.abc import Sequence
from typing import Any, overload
from urllib.parse import quote

import httpx
import pytest
from pydantic import BaseModel

from repo_ingest_mcp.clients.github import GitHubIngestClient, get_githubkit_client

# Test Data

E2E_OWNER = "octo"
E2E_REPO = "sample-app"

E2E_FILES: dict[str, str | bytes] = {
    "src/index.ts": "export const answer = 42;\n",
    "node_modules/x/index.js": "module.exports = {};\n",
    "image.png": b"\x89PNG\r\n\x1a\n",
    "README.md": "# Sample App\n\nA sample application.\n",
    "bundle.min.js": "var a=1;",
}

API_URL = "https://api.github.com"
TIMESTAMP = "2024-01-01T00:00:00Z"

REPOSITORY_URL_FIELDS = (
    "archive",
    "assignees",
    "blobs",
    "branches",
    "collaborators",
    "comments",
    "commits",
    "compare",
    "contents",
    "contributors",
    "deployments",
    "downloads",
    "events",
    "forks",
    "git_commits",
    "git_refs",
    "git_tags",
    "hooks",
    "issue_comment",
    "issue_events",
    "issues",
    "keys",
    "labels",
    "languages",
    "merges",
    "milestones",
    "notifications",
    "pulls",
    "releases",
    "stargazers",
    "statuses",
    "subscribers",
    "subscription",
    "tags",
    "teams",
    "trees",
)

USER_URL_FIELDS = ("followers", "following", "gists", "starred", "subscriptions", "organizations", "repos", "events", "received_events")


def git_sha(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()  # noqa: S324


def user_payload(login: str) -> dict[str, Any]:
    url = f"{API_URL}/users/{login}"

    return {
        "login": login,
        "id": 1,
        "node_id": "MDQ6VXNlcjE=",
        "avatar_url": "https://avatars.githubusercontent.com/u/1?v=4",
        "gravatar_id": "",
        "url": url,
        "html_url": f"https://github.com/{login}",
        **{f"{name}_url": f"{url}/{name}" for name in USER_URL_FIELDS},
        "type": "User",
        "user_view_type": "public",
        "site_admin": False,
    }


def repository_payload(owner: str, repo: str, default_branch: str) -> dict[str, Any]:
    url = f"{API_URL}/repos/{owner}/{repo}"
    html_url = f"https://github.com/{owner}/{repo}"

    return {
        "id": 1,
        "node_id": "MDEwOlJlcG9zaXRvcnkx",
        "name": repo,
        "full_name": f"{owner}/{repo}",
        "owner": user_payload(owner),
        "private": False,
        "html_url": html_url,
        "description": "A sample application.",
        "fork": False,
        "url": url,
        **{f"{name}_url": f"{url}/{name}" for name in REPOSITORY_URL_FIELDS},
        "git_url": f"git://github.com/{owner}/{repo}.git",
        "ssh_url": f"git@github.com:{owner}/{repo}.git",
        "clone_url": f"{html_url}.git",
        "svn_url": html_url,
        "mirror_url": None,
        "homepage": None,
        "language": "TypeScript",
        "forks_count": 0,
        "forks": 0,
        "stargazers_count": 0,
        "watchers_count": 0,
        "watchers": 0,
        "size": 1,
        "default_branch": default_branch,
        "open_issues_count": 0,
        "open_issues": 0,
        "is_template": False,
        "topics": [],
        "has_issues": True,
        "has_projects": True,
        "has_wiki": True,
        "has_pages": False,
        "has_downloads": True,
        "has_discussions": False,
        "archived": False,
        "disabled": False,
        "visibility": "public",
        "pushed_at": TIMESTAMP,
        "created_at": TIMESTAMP,
        "updated_at": TIMESTAMP,
        "permissions": {"admin": False, "maintain": False, "push": False, "triage": False, "pull": True},
        "allow_forking": True,
        "web_commit_signoff_required": False,
        "license": None,
        "temp_clone_token": None,
        "network_count": 0,
        "subscribers_count": 0,
    }


class FakeGitHub:
    """Serves the handful of GitHub REST endpoints used by the ingest client from an in-memory repository."""

    owner: str
    repo: str
    files: dict[str, str | bytes]
    default_branch: str
    truncated: bool
    forbidden_paths: set[str]
    rate_limited_paths: set[str]
    requests: list[httpx.Request]

    def __init__(
        self,
        files: dict[str, str | bytes],
        owner: str = E2E_OWNER,
        repo: str = E2E_REPO,
        default_branch: str = "main",
        truncated: bool = False,
        forbidden_paths: set[str] | None = None,
        rate_limited_paths: set[str] | None = None,
    ):
        self.owner = owner
        self.repo = repo
        self.files = files
        self.default_branch = default_branch
        self.truncated = truncated
        self.forbidden_paths = forbidden_paths or set()
        # Each of these paths answers its first contents request with a secondary rate limit
        self.rate_limited_paths = set(rate_limited_paths or set())
        self.requests = []

    @property
    def api_url(self) -> str:
        return f"{API_URL}/repos/{self.owner}/{self.repo}"

    @property
    def directories(self) -> set[str]:
        directories: set[str] = set()

        for path in self.files:
            parts = path.split("/")[:-1]
            directories.update("/".join(parts[: i + 1]) for i in range(len(parts)))

        return directories

    def raw(self, path: str) -> bytes:
        content = self.files[path]
        return content if isinstance(content, bytes) else content.encode("utf-8")

    def tree_item(self, path: str) -> dict[str, Any]:
        if path in self.directories:
            sha = git_sha(path.encode("utf-8"))
            return {"path": path, "mode": "040000", "type": "tree", "sha": sha, "url": f"{self.api_url}/git/trees/{sha}"}

        raw = self.raw(path)
        sha = git_sha(raw)
        return {"path": path, "mode": "100644", "type": "blob", "sha": sha, "size": len(raw), "url": f"{self.api_url}/git/blobs/{sha}"}

    def tree(self) -> dict[str, Any]:
        paths = sorted(self.directories | set(self.files))
        sha = git_sha(b"".join(path.encode("utf-8") for path in paths))

        return {
            "sha": sha,
            "url": f"{self.api_url}/git/trees/{sha}",
            "tree": [self.tree_item(path) for path in paths],
            "truncated": self.truncated,
        }

    def content_links(self, path: str, kind: str) -> dict[str, Any]:
        sha = git_sha(self.raw(path)) if path in self.files else git_sha(path.encode("utf-8"))
        url = f"{self.api_url}/contents/{quote(path)}?ref={self.default_branch}"
        git_url = f"{self.api_url}/git/{'blobs' if kind == 'file' else 'trees'}/{sha}"
        html_url = f"https://github.com/{self.owner}/{self.repo}/{'blob' if kind == 'file' else 'tree'}/{self.default_branch}/{quote(path)}"

        return {
            "sha": sha,
            "url": url,
            "git_url": git_url,
            "html_url": html_url,
            "download_url": f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/{self.default_branch}/{quote(path)}"
            if kind == "file"
            else None,
            "_links": {"self": url, "git": git_url, "html": html_url},
        }

    def directory_listing(self, path: str) -> list[dict[str, Any]]:
        prefix = f"{path}/"
        entries = self.directories | set(self.files)
        children = sorted(entry for entry in entries if entry.startswith(prefix) and "/" not in entry.removeprefix(prefix))

        return [
            {
                "type": "file" if child in self.files else "dir",
                "size": len(self.raw(child)) if child in self.files else 0,
                "name": child.rsplit("/", 1)[-1],
                "path": child,
                **self.content_links(child, kind="file" if child in self.files else "dir"),
            }
            for child in children
        ]

    def content(self, path: str) -> httpx.Response:
        if path in self.rate_limited_paths:
            self.rate_limited_paths.discard(path)
            return httpx.Response(
                429, headers={"retry-after": "0"}, json={"message": "You have exceeded a secondary rate limit.", "status": "429"}
            )

        if path in self.forbidden_paths:
            return httpx.Response(403, json={"message": "Resource not accessible by integration", "status": "403"})

        if path in self.directories:
            return httpx.Response(200, json=self.directory_listing(path))

        if path not in self.files:
            return httpx.Response(404, json={"message": "Not Found", "status": "404"})

        raw = self.raw(path)

        return httpx.Response(
            200,
            json={
                "type": "file",
                "encoding": "base64",
                "size": len(raw),
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "content": base64.b64encode(raw).decode("ascii"),
                **self.content_links(path, kind="file"),
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        prefix = f"/repos/{self.owner}/{self.repo}"
        path = request.url.path

        if not path.startswith(prefix):
            return httpx.Response(404, json={"message": "Not Found", "status": "404"})

        rest = path.removeprefix(prefix)

        if rest == "":
            return httpx.Response(200, json=repository_payload(owner=self.owner, repo=self.repo, default_branch=self.default_branch))

        if rest.startswith("/git/trees/"):
            if rest.removeprefix("/git/trees/") != self.default_branch:
                return httpx.Response(404, json={"message": "Not Found", "status": "404"})
            return httpx.Response(200, json=self.tree())

        if rest.startswith("/contents/"):
            return self.content(rest.removeprefix("/contents/"))

        return httpx.Response(404, json={"message": "Not Found", "status": "404"})

    @property
    def request_paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


def build_zip(entries: dict[str, str | bytes]) -> bytes:
    """Build an in-memory ZIP archive. Names ending in a slash become directory entries."""

    buffer = io.BytesIO()

    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            archive.writestr(name, content)

    return buffer.getvalue()


def new_ingest_client(fake_github: FakeGitHub, batch_size: int = 100, read_timeout: float | None = None) -> GitHubIngestClient:
    githubkit_client = get_githubkit_client(token="test-token", async_transport=httpx.MockTransport(fake_github.handler), http_cache=False)
    return GitHubIngestClient(githubkit_client=githubkit_client, batch_size=batch_size, read_timeout=read_timeout)


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub(files=dict(E2E_FILES))


@pytest.fixture
def ingest_client(fake_github: FakeGitHub) -> GitHubIngestClient:
    return new_ingest_client(fake_github)


def handle_exclude_keys(dictionary: dict[str, Any], exclude_keys: list[str] | None = None) -> dict[str, Any]:
    if exclude_keys is None:
        return dictionary
    return {key: value for key, value in dictionary.items() if key not in exclude_keys}


@overload
def dump_for_snapshot(
    basemodel: None,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> None: ...


@overload
def dump_for_snapshot(
    basemodel: BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any]: ...


def dump_for_snapshot(
    basemodel: None | BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any] | None:
    if basemodel is None:
        return None

    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_list_for_snapshot(
    basemodel: None | Sequence[BaseModel],
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> list[dict[str, Any]] | None:
    if basemodel is None:
        return []

    return [dump_for_snapshot(item, exclude_keys, exclude_none, **dump_kwargs) for item in basemodel]
