from typing import Literal, Self

from pydantic import BaseModel, Field

from repo_ingest_mcp.models.files import RetainedFile
from repo_ingest_mcp.models.tree import TreeSummary


class RepositorySource(BaseModel):
    """A GitHub repository that was ingested."""

    type: Literal["repository"] = "repository"
    owner: str = Field(description="The owner of the repository.")
    repo: str = Field(description="The name of the repository.")
    ref: str = Field(description="The branch, tag or commit the files were read from.")


class ArchiveSource(BaseModel):
    """An uploaded archive that was ingested."""

    type: Literal["archive"] = "archive"
    name: str | None = Field(default=None, description="The name of the archive, if known.")


class IngestionResult(BaseModel):
    """The retained files of a source and a summary of their layout."""

    source: RepositorySource | ArchiveSource = Field(discriminator="type", description="Where the files came from.")
    files: list[RetainedFile] = Field(description="The files that passed the relevance filter and were read successfully.")
    tree: str = Field(description="The layout of the retained files, rendered for use as prompt context.")
    candidate_count: int = Field(default=0, description="The number of files discovered before filtering.")

    @classmethod
    def from_files(
        cls, source: RepositorySource | ArchiveSource, files: list[RetainedFile], tree: TreeSummary, candidate_count: int
    ) -> Self:
        return cls(source=source, files=files, tree=tree.render(), candidate_count=candidate_count)

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_lines(self) -> int:
        return sum(file.line_count for file in self.files)

    @property
    def is_empty(self) -> bool:
        return not self.files

    def render_files(self) -> str:
        """Render every file as a markdown section with its content in a code block."""

        return "\n\n".join(f"### File: {file.path}\n```\n{file.content}\n```" for file in self.files)

    def without_content(self) -> Self:
        """Drop file contents, keeping the previews."""

        return self.model_copy(update={"files": [file.model_copy(update={"content": ""}) for file in self.files]})
