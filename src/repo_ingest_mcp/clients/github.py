import base64
import os
import re
from collections.abc import Awaitable, Callable, Sequence
from logging import Logger, getLogger
from typing import TYPE_CHECKING, Any, Literal, overload
from urllib.parse import quote

import httpx
from githubkit import GitHub as GitHubKit
from githubkit.auth.token import TokenAuthStrategy
from githubkit.exception import GitHubException as GitHubKitGitHubException
from githubkit.exception import RequestFailed as GitHubKitRequestFailed
from githubkit.response import Response
from githubkit.response import Response as GitHubKitResponse
from githubkit.retry import RetryChainDecision, RetryRateLimit, RetryServerError
from githubkit.versions.v2022_11_28.models import ContentFile as GitHubKitContentFile
from pydantic import BaseModel

from repo_ingest_mcp.clients.batching import DEFAULT_BATCH_SIZE, fetch_in_batches
from repo_ingest_mcp.clients.errors.base import ConfigurationError
from repo_ingest_mcp.clients.errors.github import (
    InvalidRepositoryUrlError,
    RequestError,
    ResourceNotFoundError,
    ResourceTypeMismatchError,
)
from repo_ingest_mcp.filters.relevance import DEFAULT_RELEVANCE_RULES, RelevanceRules, categorize_path, filter_candidates
from repo_ingest_mcp.models.files import DEFAULT_PREVIEW_LINES, BatchFetchReport, CandidatePath, RetainedFile
from repo_ingest_mcp.models.ingestion import IngestionResult, RepositorySource
from repo_ingest_mcp.models.tree import TreeSummary

if TYPE_CHECKING:
    from githubkit.versions.v2022_11_28.models import FullRepository as GitHubKitFullRepository
    from githubkit.versions.v2022_11_28.models import GitTree as GitHubKitGitTree

NOT_FOUND_ERROR = 404

GITHUBKIT_RESPONSE_TYPE = BaseModel | Sequence[BaseModel]

REPOSITORY_URL_PATTERN = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s?#]+)")


def extract_response[T: GITHUBKIT_RESPONSE_TYPE](response: Response[T], /) -> T:
    """Extract the response from a response."""

    return response.parsed_data


def decode_content(content: str) -> str:
    return base64.b64decode(content).decode("utf-8")


def escape_path(path: str) -> str:
    """Percent-encode a repository path so characters like `#`, `?` and `%` reach GitHub as part of the path."""

    return quote(path, safe="/")


def get_github_token() -> str | None:
    for env_var in ("GITHUB_TOKEN", "GITHUB_PERSONAL_ACCESS_TOKEN"):
        if token := os.environ.get(env_var):
            return token
    return None


def validate_batch_size(batch_size: int | str) -> int:
    try:
        value = int(batch_size)
    except ValueError as e:
        raise ConfigurationError(setting="INGEST_BATCH_SIZE", value=str(batch_size), expected="a positive integer") from e

    if value < 1:
        raise ConfigurationError(setting="INGEST_BATCH_SIZE", value=str(batch_size), expected="a positive integer")

    return value


def validate_read_timeout(read_timeout: float | str) -> float:
    try:
        value = float(read_timeout)
    except ValueError as e:
        raise ConfigurationError(setting="INGEST_READ_TIMEOUT", value=str(read_timeout), expected="a positive number of seconds") from e

    if value <= 0:
        raise ConfigurationError(setting="INGEST_READ_TIMEOUT", value=str(read_timeout), expected="a positive number of seconds")

    return value


def get_batch_size() -> int:
    return validate_batch_size(os.getenv("INGEST_BATCH_SIZE", str(DEFAULT_BATCH_SIZE)))


def get_read_timeout() -> float | None:
    if read_timeout := os.getenv("INGEST_READ_TIMEOUT"):
        return validate_read_timeout(read_timeout)
    return None


def get_githubkit_client(
    token: str | None = None, async_transport: httpx.AsyncBaseTransport | None = None, http_cache: bool = True
) -> GitHubKit[Any]:
    # Retry server errors up to 3 times
    retry_server_error = RetryServerError()

    # Retry rate limit errors up to 3 times
    retry_rate_limit = RetryRateLimit(max_retry=3)

    retry_chain = RetryChainDecision(
        retry_server_error,
        retry_rate_limit,
    )

    # Public repositories can be read without a token, at a lower rate limit
    if token := token or get_github_token():
        return GitHubKit[TokenAuthStrategy](
            auth=TokenAuthStrategy(token=token), auto_retry=retry_chain, async_transport=async_transport, http_cache=http_cache
        )

    return GitHubKit(auto_retry=retry_chain, async_transport=async_transport, http_cache=http_cache)


def parse_repository_url(url: str) -> tuple[str, str]:
    """Parse the owner and repository name out of a GitHub URL, e.g. `https://github.com/owner/repo.git`."""

    match = REPOSITORY_URL_PATTERN.search(url)

    if not match:
        raise InvalidRepositoryUrlError(url=url)

    owner, repo = match.group(1), match.group(2)

    repo = repo.removesuffix(".git")

    if not repo:
        raise InvalidRepositoryUrlError(url=url)

    return owner, repo


def candidates_from_git_tree(git_tree: "GitHubKitGitTree") -> list[CandidatePath]:
    candidates: list[CandidatePath] = []

    for tree_item in git_tree.tree:
        if tree_item.type == "blob":
            candidates.append(CandidatePath(path=tree_item.path, kind="file", size=tree_item.size or None))
        elif tree_item.type == "tree":
            candidates.append(CandidatePath(path=tree_item.path, kind="directory"))

    return candidates


class GitHubIngestClient:
    githubkit_client: GitHubKit[Any]
    logger: Logger

    batch_size: int
    read_timeout: float | None

    log_requests: bool
    log_responses: bool
    log_on_error: bool

    def __init__(
        self,
        githubkit_client: GitHubKit[Any] | None = None,
        logger: Logger | None = None,
        batch_size: int | None = None,
        read_timeout: float | None = None,
        log_requests: bool = False,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        self.githubkit_client = githubkit_client or get_githubkit_client()
        self.logger = logger or getLogger(__name__)
        self.batch_size = validate_batch_size(batch_size) if batch_size is not None else get_batch_size()
        self.read_timeout = validate_read_timeout(read_timeout) if read_timeout is not None else get_read_timeout()
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.log_on_error = log_on_error

    def _get_loggers(
        self, log_request: bool | None = None, log_response: bool | None = None, log_on_error: bool | None = None
    ) -> tuple[Callable[[str], Any], Callable[[str], Any], Callable[[str], Any]]:
        request_logger = self.logger.info if log_request or self.log_requests else self.logger.debug
        response_logger = self.logger.info if log_response or self.log_responses else self.logger.debug
        error_logger = self.logger.error if log_on_error or self.log_on_error else self.logger.debug
        return request_logger, response_logger, error_logger

    @overload
    async def _perform_rest_request[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        log_request: bool | None = None,
        log_response: bool | None = None,
        log_on_error: bool | None = None,
        error_on_not_found: Literal[False] = False,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> T | None: ...

    @overload
    async def _perform_rest_request[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        log_request: bool | None = None,
        log_response: bool | None = None,
        log_on_error: bool | None = None,
        error_on_not_found: Literal[True] = True,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> T: ...

    async def _perform_rest_request[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        log_request: bool | None = None,
        log_response: bool | None = None,
        log_on_error: bool | None = None,
        error_on_not_found: bool | None = None,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> T | None:
        """Perform a request and extract the response.

        Args:
            action: The action being performed.
            log_request: Whether to log the request.
            log_response: Whether to log the response.
            log_on_error: Whether to log on error.
            error_on_not_found: Whether to raise an error if the resource is not found.

        Raises:
            ResourceNotFoundError: If the resource is not found and error_on_not_found is True.
            RequestError: If the request fails.
        """

        request_logger, response_logger, error_logger = self._get_loggers(
            log_request=log_request, log_response=log_response, log_on_error=log_on_error
        )

        request_logger(f"Performing {action} using {method.__name__} with kwargs {request_args}")

        try:
            response: GitHubKitResponse[T] = await method(**request_args)
        except GitHubKitRequestFailed as e:
            if e.response.status_code == NOT_FOUND_ERROR:
                if error_on_not_found:
                    raise ResourceNotFoundError(action=action, resource=e.request.url.path) from e

                return None

            error_logger(f"RequestFailed error performing {action} using {method.__name__} with kwargs {request_args}: {e}")

            raise RequestError(action=action, message=str(e)) from e
        except GitHubKitGitHubException as e:
            error_logger(f"Error performing {action} using {method.__name__} with kwargs {request_args}: {e}")

            raise RequestError(action=action, message=str(e)) from e

        extracted_response = extract_response(response)

        response_logger(f"Completed {action} using {method.__name__} with kwargs {request_args}")

        return extracted_response

    async def get_default_branch(self, owner: str, repo: str) -> str:
        """Get the default branch of a repository. Raises a ResourceNotFoundError if the repository does not exist."""

        repository: GitHubKitFullRepository = await self._perform_rest_request(
            action="Get repository",
            log_request=True,
            error_on_not_found=True,
            method=self.githubkit_client.rest.repos.async_get,
            owner=owner,
            repo=repo,
        )

        return repository.default_branch

    async def get_repository_tree(self, owner: str, repo: str, ref: str) -> list[CandidatePath]:
        """Get every entry of the repository tree at the given ref."""

        tree: GitHubKitGitTree = await self._perform_rest_request(
            action="Get repository tree",
            log_request=True,
            error_on_not_found=True,
            method=self.githubkit_client.rest.git.async_get_tree,
            owner=owner,
            repo=repo,
            tree_sha=escape_path(ref),
            recursive="1",
        )

        if tree.truncated:
            self.logger.warning(f"The tree of {owner}/{repo}@{ref} was truncated by GitHub, some files will be missing.")

        return candidates_from_git_tree(git_tree=tree)

    async def get_file(
        self, owner: str, repo: str, path: str, ref: str | None = None, preview_lines: int = DEFAULT_PREVIEW_LINES
    ) -> RetainedFile | None:
        """Get a file from a repository.

        Returns None if the file does not exist or its content cannot be decoded as UTF-8 text.

        Raises:
            ResourceTypeMismatchError: If the path is not a file.
        """

        # Without a ref GitHub reads from the default branch
        ref_args: dict[str, str] = {"ref": ref} if ref is not None else {}

        if not (
            file := await self._perform_rest_request(
                action="Get file",
                error_on_not_found=False,
                method=self.githubkit_client.rest.repos.async_get_content,
                owner=owner,
                repo=repo,
                path=escape_path(path),
                **ref_args,
            )
        ):
            return None

        if not isinstance(file, GitHubKitContentFile):
            raise ResourceTypeMismatchError(action="Get file", resource=path, expected_type=GitHubKitContentFile, actual_type=type(file))

        # Files over 1 MB are returned without content
        if not file.content:
            return None

        try:
            content = decode_content(file.content)
        except (UnicodeDecodeError, ValueError):
            self.logger.debug(f"Could not decode {owner}/{repo}/{path} as text")
            return None

        return RetainedFile.from_text(
            path=path, content=content, size=file.size, category=categorize_path(path), preview_lines=preview_lines
        )

    async def fetch_files(self, owner: str, repo: str, paths: Sequence[str], ref: str | None = None) -> BatchFetchReport:
        """Fetch the files in batches, recording the outcome of every read."""

        async def read(path: str) -> RetainedFile | None:
            return await self.get_file(owner=owner, repo=repo, path=path, ref=ref)

        return await fetch_in_batches(
            paths=paths, read=read, batch_size=self.batch_size, read_timeout=self.read_timeout, logger=self.logger
        )

    async def ingest_repository(
        self, owner: str, repo: str, ref: str | None = None, rules: RelevanceRules = DEFAULT_RELEVANCE_RULES
    ) -> IngestionResult:
        """Discover, filter and download the valuable files of a repository.

        Args:
            owner: The owner of the repository.
            repo: The name of the repository.
            ref: The branch, tag or commit to read. If not provided, the default branch will be used.
            rules: The relevance rules used to decide which files are kept.
        """

        self.logger.info(f"Fetching repository {owner}/{repo}")

        if ref is None:
            ref = await self.get_default_branch(owner=owner, repo=repo)

        candidates: list[CandidatePath] = await self.get_repository_tree(owner=owner, repo=repo, ref=ref)

        valuable: list[CandidatePath] = filter_candidates(candidates, rules=rules)

        self.logger.info(f"Filtered {len(valuable)} valuable files from {len(candidates)} tree entries in {owner}/{repo}")

        report: BatchFetchReport = await self.fetch_files(owner=owner, repo=repo, paths=[candidate.path for candidate in valuable], ref=ref)

        files: list[RetainedFile] = report.files

        self.logger.info(f"Total files ready for analysis from {owner}/{repo}: {len(files)}")

        return IngestionResult.from_files(
            source=RepositorySource(owner=owner, repo=repo, ref=ref),
            files=files,
            tree=TreeSummary.from_paths(file.path for file in files),
            candidate_count=sum(1 for candidate in candidates if candidate.kind == "file"),
        )

    async def ingest_repository_url(
        self, url: str, ref: str | None = None, rules: RelevanceRules = DEFAULT_RELEVANCE_RULES
    ) -> IngestionResult:
        """Ingest a repository from its GitHub URL."""

        owner, repo = parse_repository_url(url)

        return await self.ingest_repository(owner=owner, repo=repo, ref=ref, rules=rules)
