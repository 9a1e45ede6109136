from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PREVIEW_LINES = 200

FileCategory = Literal["documentation", "code", "config", "other"]


def build_preview(content: str, preview_lines: int = DEFAULT_PREVIEW_LINES) -> str:
    """Return the first `preview_lines` lines of the content."""

    return "\n".join(content.split("\n")[:preview_lines])


class CandidatePath(BaseModel):
    """A path discovered in a source tree, before relevance filtering."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="The path of the entry, relative to the root of the source.")
    kind: Literal["file", "directory"] = Field(description="Whether the entry is a file or a directory.")
    size: int | None = Field(default=None, description="The declared size of the entry in bytes, if known.")


class RetainedFile(BaseModel):
    """A file that passed the relevance filter and was read successfully."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="The path of the file.")
    content: str = Field(description="The decoded text content of the file.")
    size: int = Field(description="The size of the file in bytes.")
    preview: str = Field(description="The first lines of the file.")
    category: FileCategory = Field(default="other", description="A coarse classification of the file.")

    @classmethod
    def from_text(
        cls,
        path: str,
        content: str,
        size: int | None = None,
        category: FileCategory = "other",
        preview_lines: int = DEFAULT_PREVIEW_LINES,
    ) -> Self:
        return cls(
            path=path,
            content=content,
            size=size if size is not None else len(content.encode("utf-8")),
            preview=build_preview(content, preview_lines=preview_lines),
            category=category,
        )

    @property
    def line_count(self) -> int:
        return len(self.content.split("\n"))


class FetchSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    path: str
    file: RetainedFile


class FetchFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failure"] = "failure"
    path: str
    reason: str


FetchOutcome = FetchSuccess | FetchFailure


class BatchFetchReport(BaseModel):
    """The outcome of every read performed by a batched fetch, in discovery order."""

    outcomes: list[FetchOutcome] = Field(default_factory=list)
    batch_count: int = Field(default=0, description="The number of sequential batches that were run.")

    @property
    def files(self) -> list[RetainedFile]:
        return [outcome.file for outcome in self.outcomes if isinstance(outcome, FetchSuccess)]

    @property
    def failures(self) -> list[FetchFailure]:
        return [outcome for outcome in self.outcomes if isinstance(outcome, FetchFailure)]
