import io
import zipfile
from logging import Logger, getLogger

from pydantic import BaseModel, ConfigDict, Field

from repo_ingest_mcp.clients.errors.archive import ArchiveError
from repo_ingest_mcp.filters.relevance import DEFAULT_RELEVANCE_RULES, RelevanceRules, categorize_path, is_valuable
from repo_ingest_mcp.models.files import RetainedFile
from repo_ingest_mcp.models.ingestion import ArchiveSource, IngestionResult
from repo_ingest_mcp.models.tree import TreeSummary

MAX_FILE_SIZE = 1024 * 1024
MAX_TOTAL_FILES = 1000
NULL_BYTE_WINDOW = 1000
TEXT_RATIO_THRESHOLD = 0.9


class ArchiveLimits(BaseModel):
    """Limits applied while reading an archive."""

    model_config = ConfigDict(frozen=True)

    max_file_size: int = Field(default=MAX_FILE_SIZE, description="Entries larger than this many bytes are skipped.")
    max_total_files: int = Field(default=MAX_TOTAL_FILES, description="Reading stops once this many files have been kept.")
    null_byte_window: int = Field(default=NULL_BYTE_WINDOW, description="A null byte within this many characters marks a file as binary.")
    text_ratio_threshold: float = Field(
        default=TEXT_RATIO_THRESHOLD, description="The fraction of text characters a file must exceed to be treated as text."
    )


DEFAULT_ARCHIVE_LIMITS = ArchiveLimits()


def is_text_character(character: str) -> bool:
    code = ord(character)
    return 32 <= code <= 126 or code in (9, 10, 13) or code > 127


def is_text_content(
    content: str, null_byte_window: int = NULL_BYTE_WINDOW, text_ratio_threshold: float = TEXT_RATIO_THRESHOLD
) -> bool:
    """Guess whether decoded content is text.

    This is a heuristic: content with a null byte near the start is binary, otherwise more than
    `text_ratio_threshold` of the characters must be printable ASCII, whitespace, or non-ASCII.
    """

    if not content:
        return False

    null_byte_index = content.find("\0")
    if null_byte_index != -1 and null_byte_index < null_byte_window:
        return False

    text_characters = sum(1 for character in content if is_text_character(character))

    return text_characters / len(content) > text_ratio_threshold


class ArchiveReader:
    """Reads the valuable text files out of an in-memory ZIP archive."""

    rules: RelevanceRules
    limits: ArchiveLimits
    logger: Logger

    def __init__(
        self,
        rules: RelevanceRules = DEFAULT_RELEVANCE_RULES,
        limits: ArchiveLimits = DEFAULT_ARCHIVE_LIMITS,
        logger: Logger | None = None,
    ):
        self.rules = rules
        self.limits = limits
        self.logger = logger or getLogger(__name__)

    def _open(self, buffer: bytes) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(io.BytesIO(buffer))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
            raise ArchiveError(message=str(e)) from e

    def _read_entry(self, archive: zipfile.ZipFile, entry: zipfile.ZipInfo) -> RetainedFile | None:
        try:
            raw = archive.read(entry)
        except (zipfile.BadZipFile, NotImplementedError, RuntimeError, OSError) as e:
            self.logger.info(f"Skipping unreadable file: {entry.filename} ({e})")
            return None

        content = raw.decode("utf-8", errors="replace")

        if not is_text_content(
            content, null_byte_window=self.limits.null_byte_window, text_ratio_threshold=self.limits.text_ratio_threshold
        ):
            self.logger.info(f"Skipping binary file: {entry.filename}")
            return None

        return RetainedFile.from_text(path=entry.filename, content=content, size=entry.file_size, category=categorize_path(entry.filename))

    def read(self, buffer: bytes, name: str | None = None) -> IngestionResult:
        """Read the archive and return the retained files with a summary of their layout.

        Raises:
            ArchiveError: If the buffer is not a readable ZIP archive.
        """

        files: list[RetainedFile] = []
        candidate_count = 0

        with self._open(buffer) as archive:
            for entry in archive.infolist():
                if entry.is_dir():
                    continue

                candidate_count += 1

                if not is_valuable(entry.filename, rules=self.rules):
                    continue

                if entry.file_size > self.limits.max_file_size:
                    self.logger.info(f"Skipping large file: {entry.filename} ({entry.file_size} bytes)")
                    continue

                if len(files) >= self.limits.max_total_files:
                    self.logger.warning(f"Reached max files limit ({self.limits.max_total_files})")
                    break

                if retained_file := self._read_entry(archive, entry):
                    files.append(retained_file)

        self.logger.info(f"Parsed ZIP: {len(files)} files extracted from {candidate_count} entries")

        return IngestionResult.from_files(
            source=ArchiveSource(name=name),
            files=files,
            tree=TreeSummary.from_paths(sorted(file.path for file in files)),
            candidate_count=candidate_count,
        )


def parse_archive(
    buffer: bytes,
    name: str | None = None,
    rules: RelevanceRules = DEFAULT_RELEVANCE_RULES,
    limits: ArchiveLimits = DEFAULT_ARCHIVE_LIMITS,
) -> IngestionResult:
    """Read the valuable text files out of an in-memory ZIP archive."""

    return ArchiveReader(rules=rules, limits=limits).read(buffer=buffer, name=name)
