import asyncio
import base64
import binascii
import os
from logging import Logger
from pathlib import Path
from typing import Any

from fastmcp.server import FastMCP
from fastmcp.tools import Tool
from fastmcp.tools.tool_transform import ArgTransform, TransformedTool
from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, Field

from repo_ingest_mcp.clients.archive import ArchiveReader
from repo_ingest_mcp.clients.errors.archive import ArchiveError
from repo_ingest_mcp.clients.github import GitHubIngestClient
from repo_ingest_mcp.filters.relevance import DEFAULT_RELEVANCE_RULES, RelevanceRules, categorize_path, is_valuable
from repo_ingest_mcp.models.files import FileCategory
from repo_ingest_mcp.models.ingestion import IngestionResult
from repo_ingest_mcp.servers.shared.annotations import (
    ARCHIVE_BASE64,
    ARCHIVE_NAME,
    ARCHIVE_PATH,
    CHECK_PATHS,
    INCLUDE_CONTENT,
    OWNER,
    OWNER_ARG_TRANSFORM,
    REF,
    REPO,
    REPO_ARG_TRANSFORM,
    REPOSITORY_URL,
)
from repo_ingest_mcp.servers.shared.errors import NoAnalyzableFilesError
from repo_ingest_mcp.servers.shared.utility import estimate_tokens


def get_archive_root() -> Path:
    return Path(os.getenv("INGEST_ARCHIVE_ROOT") or Path.cwd())


def description(description: str, /) -> ArgTransform:
    return ArgTransform(description=description)


def hide() -> ArgTransform:
    return ArgTransform(hide=True)


class PathCheck(BaseModel):
    """The relevance decision for a single path."""

    path: str = Field(description="The path that was checked.")
    valuable: bool = Field(description="Whether the file would be kept by an ingestion.")
    category: FileCategory = Field(description="A coarse classification of the file.")


class IngestServer:
    """Exposes the repository ingestion pipeline as MCP tools."""

    ingest_client: GitHubIngestClient
    archive_reader: ArchiveReader
    rules: RelevanceRules
    archive_root: Path
    logger: Logger

    def __init__(
        self,
        ingest_client: GitHubIngestClient | None = None,
        archive_reader: ArchiveReader | None = None,
        rules: RelevanceRules = DEFAULT_RELEVANCE_RULES,
        archive_root: Path | str | None = None,
        logger: Logger | None = None,
    ):
        self.archive_root = Path(archive_root or get_archive_root()).resolve()
        self.logger = logger or get_logger(name=__name__)
        self.rules = rules
        self.ingest_client = ingest_client or GitHubIngestClient(logger=self.logger)
        self.archive_reader = archive_reader or ArchiveReader(rules=rules, logger=self.logger)

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        for tool in self.passthrough_tools().values():
            _ = fastmcp.add_tool(tool=tool)

        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ingest_repository))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ingest_repository_url))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ingest_archive))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ingest_archive_file))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.check_paths))

        return fastmcp

    def passthrough_tools(self) -> dict[str, TransformedTool]:
        get_file_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.ingest_client.get_file),
            description="Get a single file from a GitHub repository, with a preview of its first lines.",
            transform_args={
                "owner": OWNER_ARG_TRANSFORM,
                "repo": REPO_ARG_TRANSFORM,
                "path": description("The path of the file in the repository. For example, 'README.md' or 'src/index.ts'."),
                "ref": description("The branch, tag or commit to read the file from. If not provided, the default branch will be used."),
                "preview_lines": hide(),
            },
        )

        return {tool.name: tool for tool in [get_file_tool]}

    def _finish(self, result: IngestionResult, source: str, include_content: bool) -> IngestionResult:
        if result.is_empty:
            raise NoAnalyzableFilesError(source=source)

        estimated_tokens: int = estimate_tokens(result.render_files())

        self.logger.info(
            f"Ingested {result.total_files} files ({result.total_lines} lines, ~{estimated_tokens} tokens) from {source}"
        )

        return result if include_content else result.without_content()

    async def ingest_repository(
        self, owner: OWNER, repo: REPO, ref: REF = None, include_content: INCLUDE_CONTENT = True
    ) -> IngestionResult:
        """Collect the source, configuration and documentation files of a GitHub repository along with a tree of their layout.

        Build output, dependencies, binaries, media, and lockfiles are skipped."""

        result: IngestionResult = await self.ingest_client.ingest_repository(owner=owner, repo=repo, ref=ref, rules=self.rules)

        return self._finish(result=result, source=f"{owner}/{repo}", include_content=include_content)

    async def ingest_repository_url(self, url: REPOSITORY_URL, include_content: INCLUDE_CONTENT = True) -> IngestionResult:
        """Collect the source, configuration and documentation files of a GitHub repository, given its URL."""

        result: IngestionResult = await self.ingest_client.ingest_repository_url(url=url, rules=self.rules)

        return self._finish(result=result, source=url, include_content=include_content)

    async def ingest_archive(
        self, archive_base64: ARCHIVE_BASE64, name: ARCHIVE_NAME = None, include_content: INCLUDE_CONTENT = True
    ) -> IngestionResult:
        """Collect the source, configuration and documentation files of an uploaded ZIP archive along with a tree of their layout."""

        try:
            buffer: bytes = base64.b64decode(archive_base64, validate=True)
        except binascii.Error as e:
            raise ArchiveError(message=f"The archive is not valid base64: {e}") from e

        result: IngestionResult = await asyncio.to_thread(self.archive_reader.read, buffer, name)

        return self._finish(result=result, source=name or "uploaded archive", include_content=include_content)

    async def ingest_archive_file(self, path: ARCHIVE_PATH, include_content: INCLUDE_CONTENT = True) -> IngestionResult:
        """Collect the source, configuration and documentation files of a ZIP archive on the server's local file system.

        Only archives inside the server's archive directory can be read."""

        archive_path = (self.archive_root / path).resolve()

        if not archive_path.is_relative_to(self.archive_root):
            raise ArchiveError(message=f"{path} is outside of the archive directory {self.archive_root}")

        try:
            buffer: bytes = await asyncio.to_thread(archive_path.read_bytes)
        except OSError as e:
            raise ArchiveError(message=f"Could not read {archive_path}: {e}") from e

        result: IngestionResult = await asyncio.to_thread(self.archive_reader.read, buffer, archive_path.name)

        return self._finish(result=result, source=str(archive_path), include_content=include_content)

    async def check_paths(self, paths: CHECK_PATHS) -> list[PathCheck]:
        """Check which file paths an ingestion would keep, without reading anything."""

        return [
            PathCheck(path=path, valuable=is_valuable(path, rules=self.rules), category=categorize_path(path)) for path in paths
        ]
